# LangGraph workflows
from app.workflows.paid_action import run_paid_action

__all__ = ["run_paid_action"]
