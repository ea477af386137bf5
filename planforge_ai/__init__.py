"""PlanForge-AI: persisted plan and workflow execution engine."""
