"""HTTP routers for boards, columns and automations."""
