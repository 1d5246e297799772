"""
Pilsa Backend — Services Layer
===============================

What:  Business logic between the routes (HTTP) and the database.
How:   Stateless singletons; every call receives the request's AsyncSession
       and, for user-scoped operations, the authenticated AuthUser.

Service Inventory:
    - AuthProvider (abstract): access-token verification contract
    - SupabaseAuthService: verifies tokens against Supabase Auth (retries + circuit breaker)
    - UserService: identity resolution, profile, linked social provider
    - CreditService: transcription accrual, daily/monthly stats, completed verses
    - ChurchService: church search, memberships, primary designation
    - KVStore: legacy key-value table
    - BibleService: bundled Bible text (chapter, verse, search)
"""
