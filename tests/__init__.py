"""Test package for the ear trainer.

Core modules are exercised directly with a fake clock; the headless
simulations script whole sessions through the orchestrator. The pygame
smoke test uses the dummy video and audio drivers so no window opens.
Run ``pytest`` from the project root.
"""
