"""
Cogs are the low-level building blocks of the framework.

They know nothing about admission, conversion, or registration as such:
they are the helpers, the structures, the settings, and the API clients,
on top of which the :mod:`kubehook._core` is built.
"""
