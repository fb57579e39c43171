"""Video provider implementations.

Each provider maps a ClipRequest onto one remote API:
  submit → (poll) → finished Operation carrying media references
"""
