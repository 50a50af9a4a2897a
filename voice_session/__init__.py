"""
Voice Session core.

Owns one realtime spoken conversation with the AI counterpart:
token negotiation → microphone capture → WebRTC offer/answer → event channel.

- The orchestrator is the only writer of the live transcript
- Consumers receive frozen snapshots through the subscription contract
- Milestones and progress cards are derived once, at disconnect
"""
