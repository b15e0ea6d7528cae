"""
Unit tests for backend/threat_generation.

This test package validates the generation pipeline including:
- Risk scoring and post-generation threat edits
- Provider content conversion and error mapping
- Context assembly from threat models, tickets and files
- Response normalization and ranking
- DynamoDB persistence with status-guarded writes
- The generation orchestrator and its HTTP surface
"""
