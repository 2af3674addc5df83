"""
Connection Guardian core — data model, journey-to-connection conversion and
the monitoring state machine.

Modules:
  types          GuardedLeg, Tick, RescuePlan, Alert, GuardianSession, ...
  legs           build_guarded_legs(): booked legs -> guarded connections
  state_machine  ConnectionGuardian: idle / watching / safe / alert / pivoting

Thresholds: alert above 60 % miss chance, clear below 25 %, 3-minute cooldown.
"""
