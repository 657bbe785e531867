"""
Protocol driver package for the Plasmatronics PLI solar charge controller.

Speaks the controller's 4-byte command / 2-byte response protocol through a
serial-to-TCP gateway, keeps the link alive across drops, and decodes raw
register bytes and the 30-day history log into engineering values.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""
