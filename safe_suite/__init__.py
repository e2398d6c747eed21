"""
SAFE — modular AI-safety tooling suite.

A core orchestration service (auth, routing, module discovery, request logs)
in front of independently deployable analysis modules: adversarial
robustness, bias detection, content moderation, explainability, fake-content
detection, fraud detection, red/blue-team simulation, data-poisoning
detection and an ethical assistant.
"""

__version__ = "0.1.0"
