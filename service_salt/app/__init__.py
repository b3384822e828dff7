"""
zkLogin salt service package.

The service turns a signed OAuth identity token into a stable salt:
- Verification: trusted issuer lookup and signature checks against cached signing keys
- Derivation: HKDF over a master seed, or delegation to a remote salt authority
- Rate limiting: per-client fixed window at the HTTP boundary
"""
