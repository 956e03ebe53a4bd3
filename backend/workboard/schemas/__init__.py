"""Request and response payload schemas for the HTTP surface."""
