"""
Federated Login Portal
======================

FastAPI service that signs users in through Google, Facebook or GitHub and
renders a home and a profile page from their session.

Subpackages:
    - auth:  login/logout routes, session manager, provider clients,
             session cookie codec and session store
    - pages: home and profile pages
"""
