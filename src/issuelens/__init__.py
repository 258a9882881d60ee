"""issuelens — local RAG over a cached issue-tracker graph."""
