"""Outbound email package.

Delivers newsletter issues and subscription confirmations through either
a JSON email API (``httpx``) or an SMTP relay.
"""
