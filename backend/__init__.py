"""
Backend package for the Teamera API.

This package provides a FastAPI application and the data-access facade over
the hosted Supabase project (auth, the `profiles` table and realtime feeds).
"""
