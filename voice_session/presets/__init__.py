"""
Therapist personality presets.

Each preset defines:
- name: Preset identifier
- prompt: Base persona for the AI counterpart
- description: One-line summary for settings screens
"""
