"""Request orchestration and the inbound service facade."""
