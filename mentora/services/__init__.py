"""Domain services for staging, assembling and describing lecture videos."""
