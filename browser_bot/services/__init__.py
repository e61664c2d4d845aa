"""Services module for automation submission."""

from .automation_service import prepare_script, run_automation, submit_automation

__all__ = ["prepare_script", "run_automation", "submit_automation"]
