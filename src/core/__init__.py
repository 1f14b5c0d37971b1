"""Core domain package for zapscope.

Core contains receipt matching, the relay query coordinator and payment
enrichment without any websocket or storage-specific code, keeping the
business logic portable.
"""
