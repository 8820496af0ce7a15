"""
OAuth 2.0 protocol endpoints: /authorize, /authorize/callback and /token.
"""
