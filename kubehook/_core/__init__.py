"""
The core of the framework: intents, engines, and the reactor.

* Intents are what the users declare: resources, callbacks, registries.
* Engines are what reacts to a single admission or conversion review.
* The reactor is what keeps running: informers, queues, reconcilers.
"""
