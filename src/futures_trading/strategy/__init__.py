"""Signal generator interfaces."""
