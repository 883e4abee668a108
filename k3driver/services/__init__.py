# Service layer for the K3 driver
# - gateway:      robot actuator/sensor boundary (thread-safe, simulated backend)
# - sessions:     control and data UDP session loops
# - supervisor:   starts both loops once, waits, shuts down with a final stop
# - robot_client: UDP client for the K3DRV protocol
