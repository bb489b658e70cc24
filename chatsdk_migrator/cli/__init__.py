"""Command line interface for the Stream Chat to ChatSDK migration tool."""
