"""
NumSphere
=========

Call-flow backend for rented phone numbers.

This package provides:
- Flow graph model and parsing of stored flow definitions
- Block interpreter and flow compiler producing TwiML
- Legacy (pre-graph) flow adapter
- Telephony webhooks for voice, digit gathering, call status and SMS
- Usage gating against plan minute limits
"""

__version__ = "1.0.0"
