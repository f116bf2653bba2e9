"""WisdomOS Gateway -- FastAPI hand-off surface

Routes build envelopes and submit them to the orchestrator; job inspection,
cancellation, an SSE event stream and health checks round it off.
"""
