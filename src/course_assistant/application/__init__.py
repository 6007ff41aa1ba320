"""Business logic: chunking, similarity, knowledge indexing/search, chat orchestration."""
