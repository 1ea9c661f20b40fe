"""JSON-backed settings for layouts, boot targets and tool paths."""
