"""
Messaging transport seam.

- **base.py**: the Transport protocol, InboundMessage / GroupMetadata types
  and the timeout-bounded outbound helpers.
- **console.py**: a prompt_toolkit console transport for local runs.
"""
