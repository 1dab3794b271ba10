"""Drawing helpers for annotated detection images."""
