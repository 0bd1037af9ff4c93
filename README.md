# presencenode

`presencenode` holds the logic of a room presence node: what it publishes
over MQTT, how its status lights react to events, how motion inputs are
debounced, when firmware is checked for and applied, and how sensor readings
are reported.

Hardware and network access stay outside the package. Wherever the node
would read a pin, drive an LED, talk to a sensor or send a message, the
package takes a plain Python callable or value instead, so the same code runs
on a desktop, in a test, or behind whatever transport you choose.

## Modules

| Module | Purpose |
| --- | --- |
| `presencenode.defaults` | Fixed settings (`CHANNEL`, `DEFAULT_MQTT_PORT`, `UPDATE_STARTED`, ...) and per-board defaults: `Board`, `BoardDefaults`, `board_defaults`. |
| `presencenode.mqtt` | `slugify`, `publish_with_retry`, and `Discovery` with `DeviceInfo` and `EntityCategory` for Home Assistant discovery documents. |
| `presencenode.led` | The light model: `LED`, `Addressable`, `SinglePWM`, `Color`, `ControlType`, `PixelOrder`, plus `pixel_order`, `pwm_duty` and `scale_brightness`. |
| `presencenode.leds` | `LedController`, which sends status, motion and count events to the configured lights and applies JSON light commands; `new_led` and `LedType`. |
| `presencenode.motion` | `Motion`, `MotionInput` and `PinType`: PIR and radar inputs with a hold-off timeout, published as `ON`/`OFF`. |
| `presencenode.release_update` | `HttpReleaseUpdate`: downloads a firmware image and writes it to a flasher, with `UpdateResult`, `UpdateErrorCode` and `error_message`. |
| `presencenode.updater` | `Updater`: periodic update checks, the auto-update, prerelease and OTA switches, `firmware_url` and `version_marker`. |
| `presencenode.gui` | `Gui`: console and display lines for devices added, removed, near, gone or counted, and for updates and motion. |
| `presencenode.sensors` | `HX711`, `I2CBuses`, `SHT`, `SCD4X`, `SGP30`, `TSL2561`, plus `sign_extend_24`, `format_serial_number` and `tsl2561_address`. |
| `presencenode.webserver` | `WebState`: the JSON documents for the web UI and the handling of its WebSocket commands. |
| `presencenode.node` | `Node`: online announcement, discovery, telemetry, incoming message routing and device reports; `Topics`, `Counters`, `topics_for_room`, `parse_message_topic`. |

## Examples

Topics follow from the room name:

```python
from presencenode.node import topics_for_room

topics = topics_for_room("Living Room")
topics.rooms       # "espresense/rooms/living_room"
topics.telemetry   # "espresense/rooms/living_room/telemetry"
```

PWM brightness follows a logarithmic curve on a 12-bit duty cycle:

```python
from presencenode.led import pwm_duty

pwm_duty(255, False)   # 4096, fully on
pwm_duty(0, False)     # 0, off
pwm_duty(255, True)    # 0, an inverted LED is fully on at duty 0
```

A motion input stays active for its timeout after the last detection:

```python
from presencenode.motion import MotionInput

pir = MotionInput(pin=4, timeout=0.5)
pir.sample(1, 1000)   # True: motion detected
pir.sample(0, 1200)   # None: still within the timeout, no change
pir.sample(0, 1600)   # False: cleared
```

Update error codes have readable messages:

```python
from presencenode.release_update import UpdateErrorCode, error_message

error_message(UpdateErrorCode.SERVER_FILE_NOT_FOUND)   # "File Not Found (404)"
```

## Wiring it up

`Discovery` and the components built on it (`LedController`, `Motion`,
`Updater`, the sensors) publish through a callable
`publish(topic, payload, qos, retain) -> bool`. `Node` takes a callable
`publish(topic, payload, retain) -> bool`. Connect these to your MQTT client,
pass received messages to `Node.on_message`, and call the `loop` methods of
`Motion`, `Updater` and the sensors with the current time in milliseconds and
the readings from your hardware.

`HttpReleaseUpdate` fetches with `urllib` unless you give it a `fetch`
callable, and by default writes the image into memory. The release URLs used
by `firmware_url` are the module constants `LATEST_RELEASE_URL`,
`BRANCH_ARTIFACT_URL` and `PRERELEASE_URL` in `presencenode.updater`.

## What the package does not do

- It has no MQTT client, BLE scanner or device fingerprinting of its own; it
  works with the callables and objects you hand it.
- `WebState` only builds the JSON answers and reads WebSocket messages; it
  runs no HTTP or WebSocket server.
- It does not take Wi-Fi credentials over a serial line, and it offers no
  command-line program.

## Requirements

Python 3.10 or later. The package has no runtime dependencies; the tests use
pytest (`pip install presencenode[test]`).