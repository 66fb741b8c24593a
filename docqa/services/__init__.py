"""Application services: chat orchestration, LLM access and conversation memory."""
