"""
General-purpose helpers not related to the framework itself
(neither to the reactor nor to the engines nor to the structs),
which are used to prepare and control the runtime environment.

As a rule of thumb, helpers MUST be abstracted from the framework
to such an extent that they could be extracted as reusable libraries.
"""
