"""
Client-side session and profile management.

`SessionManager` owns the login session and the cached profile,
`RealtimeProfileSubscription` keeps one profile row live, and
`ProfileViewer` is a read-only consumer for displaying a profile.
"""
