"""
Sutra reader core package.

The `reading` subsystem holds everything behind the reading page: a
catalog of texts with search and unread filtering, per-paragraph progress
and annotations persisted locally per identity and mirrored best-effort to
a remote row store, and the captcha-gated authentication flow that decides
which identity is active.
"""
