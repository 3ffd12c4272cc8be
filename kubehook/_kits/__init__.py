"""
Kits are the optional batteries around the core: e.g. the webhook server.

Kits can use the core and the cogs, but the core does not depend on the kits.
"""
