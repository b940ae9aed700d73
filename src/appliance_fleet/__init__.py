"""Virtual router fleet coordination engine.

This package coordinates a fleet of VM-based virtual routers serving tenant
networks.  It focuses on:

* batching configuration changes into a single commit per router
  (:mod:`appliance_fleet.aggregation`);
* periodic two-tier health checking with a threshold based restart policy
  (:mod:`appliance_fleet.health`, :mod:`appliance_fleet.policy`);
* controlled stop/restart guarded by per-router exclusivity
  (:mod:`appliance_fleet.orchestrator`); and
* keeping remote-access VPN configuration identical across redundant routers
  (:mod:`appliance_fleet.vpn`).

Hypervisor provisioning, the network primitives applied on a router and
entity persistence are collaborators consumed through
:mod:`appliance_fleet.interfaces`.
"""

from .manager import ApplianceManager  # noqa: F401

__all__ = ["ApplianceManager"]
