"""
Realtime Call Bridge - Backend Application Package

This package bridges one telephony media stream to one hosted realtime
conversational-AI connection for the lifetime of a phone call:
- Session registry and call lifecycle (finalize, reporting, cleanup)
- Telephony media stream handling
- AI realtime client
- HTTP endpoints for session creation and call instructions
"""

__version__ = "0.1.0"
