"""
Tenant Data Gateway
===================

Single-entry authorization gateway in front of a multi-tenant backend data
API. Callers prove they are authorized proxy clients with a shared secret;
the gateway decides per request whether the method and destination are
permitted and forwards allowed requests with privileged backend credentials.

Packages:
    - proxy: route policy, destination resolution, credential rewriting, forwarding
    - audit: best-effort audit records
    - provisioning: tenant admin provisioning
"""
