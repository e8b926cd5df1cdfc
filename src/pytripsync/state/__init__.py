"""State layer.

This package holds the pure decision logic that turns a Trip, its
Consignment, and the highest odometer reading of a batch into updated
documents and alert signals. Nothing here touches the store or a clock.
"""
