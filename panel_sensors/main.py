from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
from typing import Any

from panel_sensors.config import AppConfig, ConfigError, SensorConfig, load_config
from panel_sensors.logging_utils import configure_logging, resolve_log_level
from panel_sensors.mqtt_client import MqttPublisher
from panel_sensors.plugins import SensorPlugin, available_sensors, get_sensor
from panel_sensors.sampler import SensorInstance
from panel_sensors.schema import validate_payload

logger = logging.getLogger("panel_sensors")


@dataclass
class ActiveSensor:
    config: SensorConfig
    plugin: SensorPlugin[Any]
    instance: SensorInstance


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sample panel sensors and publish rendered values")
    parser.add_argument(
        "--config",
        default="config/example.cfg",
        help="Path to CFG configuration file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log sampled values without publishing to MQTT",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Sample every sensor once, then exit",
    )
    parser.add_argument(
        "--list-sensors",
        action="store_true",
        help="Print the settings of every registered sensor type as JSON and exit",
    )
    return parser


def build_sensors(configs: list[SensorConfig]) -> list[ActiveSensor]:
    sensors: list[ActiveSensor] = []
    for sensor_config in configs:
        plugin = get_sensor(sensor_config.type)
        instance = plugin.init(sensor_config.options)
        if instance is None:
            logger.error("Skipping sensor '%s': invalid configuration.", sensor_config.label)
            continue
        sensors.append(ActiveSensor(config=sensor_config, plugin=plugin, instance=instance))
    return sensors


async def sample_all(sensors: list[ActiveSensor]) -> list[dict[str, Any]]:
    results = await asyncio.gather(
        *(
            sensor.plugin.sample(sensor.config.rate_ms, sensor.config.format, sensor.instance)
            for sensor in sensors
        )
    )
    ts = datetime.now(timezone.utc).isoformat()
    return [
        {"identity": sensor.instance.identity, **result.to_dict(), "ts": ts}
        for sensor, result in zip(sensors, results)
    ]


def emit(payloads: list[dict[str, Any]], publisher: MqttPublisher | None) -> None:
    for payload in payloads:
        schema_errors = validate_payload(payload)
        if schema_errors:
            logger.warning(
                "Schema validation failed for %s with %s errors.",
                payload.get("identity"),
                len(schema_errors),
            )
            logger.debug("Schema errors: %s", schema_errors)
        logger.debug("%s: %r", payload["identity"], payload["value"])
        if publisher is not None:
            publisher.publish_sample(payload["identity"], payload)


async def run(config: AppConfig, once: bool, publisher: MqttPublisher | None) -> None:
    sensors = build_sensors(config.sensors)
    if not sensors:
        logger.warning("No sensors configured.")
        return
    interval = max(1, config.publish.interval_s)
    try:
        emit(await sample_all(sensors), publisher)
        if once:
            logger.info("Single-run mode enabled; exiting after first sample.")
            return
        logger.info("Sampling %s sensors every %s seconds.", len(sensors), interval)
        while True:
            await asyncio.sleep(interval)
            emit(await sample_all(sensors), publisher)
    finally:
        for sensor in sensors:
            await sensor.plugin.stop(sensor.instance)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if args.list_sensors:
        settings = [get_sensor(name).settings().to_dict() for name in available_sensors()]
        print(json.dumps(settings, indent=2, ensure_ascii=False))
        return

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logger.error("%s", exc)
        raise SystemExit(2) from None

    publisher = None if args.dry_run else MqttPublisher(config.mqtt)
    if publisher is None:
        logger.info("Dry run enabled; skipping MQTT publish.")
    else:
        publisher.connect()

    try:
        asyncio.run(run(config, args.once, publisher))
    except KeyboardInterrupt:
        logger.info("Panel sensors stopped.")
    finally:
        if publisher is not None:
            publisher.disconnect()


if __name__ == "__main__":
    main()
