"""
Semantic type aliases for the MQTT/Zenoh relay.

Both fabrics address messages with plain strings. These aliases keep the
direction of each string explicit in signatures: a topic belongs to the MQTT
broker, a key expression belongs to the Zenoh session.
"""

# Addressing
type MqttTopic = str
type MqttTopicPattern = str
type KeyExpression = str
type KeyExpressionPattern = str
type DestinationAddress = str
type TopicPrefix = str

# Payloads
type Payload = bytes

# Network
type HostAddress = str
type PortNumber = int
type ClientId = str
type EndpointLocator = str

# Supervision
type LoopName = str
type RestartCount = int
type DurationSeconds = float
