"""
Application services backed by external systems (database, remote analyzer).
"""
