"""
Services Layer

Tournament engine logic that:
- Accepts a Session plus domain inputs (IDs, payloads)
- Flushes but does not commit; the calling operation owns the transaction
- Does NOT depend on HTTP request/response objects
"""
