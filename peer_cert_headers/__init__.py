"""Peer Certificate Headers - mTLS identity projection for upstream services.

Extracts identity attributes from a peer certificate's subject and Subject
Alternative Names and attaches them to the request as X-Peer-* headers so that
applications behind a TLS terminator can make identity decisions.
"""

__version__ = "0.1.0"
