"""LangChain tool definitions for the worker and judge roles."""
