"""Harness bootstrap and scenario helpers.

Builds the app spec factory and driver registry explicitly, selects the
configured driver and exposes the steps resilience scenarios are made of.

Usage:
    instance = await init_instance()
    contexts = []
    try:
        await stop_scheduler_scenario(instance, "stopscheduler", contexts=contexts)
    finally:
        for ctx in contexts:
            await tear_down_context(instance, ctx)
        await instance.close()

Helpers raise on the first failure; the calling test decides whether to
fail, clean up or continue.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field

import structlog

from keel.config import Settings, get_settings
from keel.drivers import build_driver_registry
from keel.drivers.base import Context, ScheduleOptions, SchedulerDriver
from keel.errors import FailedToGetNodesForAppError, FailedToScheduleAppError
from keel.specs import AppSpecFactory, build_spec_factory

logger = structlog.get_logger()


@dataclass
class Instance:
    """Selected driver plus the registries and settings it was built from."""

    driver: SchedulerDriver
    factory: AppSpecFactory
    settings: Settings
    rng: random.Random = field(default_factory=random.Random)

    async def close(self) -> None:
        await self.driver.close()


async def init_instance(
    settings: Settings | None = None,
    *,
    factory: AppSpecFactory | None = None,
    driver: SchedulerDriver | None = None,
) -> Instance:
    """Build registries, select the configured driver and initialize it.

    Args:
        settings: Settings (default: get_settings())
        factory: App spec factory (default: bundled specs)
        driver: Use this driver instead of looking one up by name

    Raises:
        UnknownDriverError: If `settings.driver.name` is not registered
        ClusterApiError: If node discovery fails
    """
    settings = settings or get_settings()
    factory = factory or build_spec_factory(namespace=settings.driver.k8s.namespace)

    if driver is None:
        registry = build_driver_registry(factory, settings)
        driver = registry.get(settings.driver.name)

    await driver.init()
    logger.info(
        "harness.init",
        driver=str(driver),
        apps=factory.keys(),
        nodes=len(driver.get_nodes()),
    )
    return Instance(driver=driver, factory=factory, settings=settings)


async def schedule_apps(instance: Instance, instance_id: str) -> list[Context]:
    """Schedule the configured app keys (all specs when none are configured)."""
    options = ScheduleOptions(app_keys=list(instance.settings.scenario.app_keys))
    contexts = await instance.driver.schedule(instance_id, options)
    logger.info(
        "harness.schedule_apps",
        instance_id=instance_id,
        apps=[ctx.key for ctx in contexts],
    )
    return contexts


async def validate_context(instance: Instance, ctx: Context) -> None:
    """Check that the app is running and its storage is healthy."""
    await instance.driver.wait_for_running(ctx)
    await instance.driver.inspect_volumes(ctx)
    logger.info("harness.validate_context", app=ctx.key, instance_id=ctx.uid)


async def validate_apps(instance: Instance, contexts: list[Context]) -> None:
    for ctx in contexts:
        await validate_context(instance, ctx)


async def tear_down_context(instance: Instance, ctx: Context) -> None:
    """Destroy the app, wait for it to go away, then delete its storage."""
    await instance.driver.destroy(ctx)
    await instance.driver.wait_for_destroy(ctx)
    await instance.driver.delete_volumes(ctx)
    logger.info("harness.tear_down_context", app=ctx.key, instance_id=ctx.uid)


async def stop_scheduler_scenario(
    instance: Instance,
    test_name: str = "stopscheduler",
    *,
    reschedule_wait: float | None = None,
    contexts: list[Context] | None = None,
) -> list[Context]:
    """Stop the scheduler service under running apps and check they survive.

    For every scheduled context: pick a random node hosting the app, stop
    the scheduler service there, wait, re-validate the app, then start the
    service again. The service is restarted even when re-validation fails.

    Args:
        instance: Initialized harness instance
        test_name: Prefix of the instance IDs ("<test_name>-<i>")
        reschedule_wait: Seconds to wait with the service stopped
            (default: scenario.reschedule_wait)
        contexts: Caller-owned list every scheduled context is appended to
            as soon as it exists, so the caller can tear them down when
            a later step raises

    Returns:
        The scheduled contexts (`contexts` when given). Tearing them down
        is the caller's job.

    Raises:
        FailedToScheduleAppError: Contexts of specs scheduled before the
            failure are still appended to `contexts`
        FailedToGetNodesForAppError: If no known node runs the app
    """
    scenario = instance.settings.scenario
    wait = scenario.reschedule_wait if reschedule_wait is None else reschedule_wait
    contexts = [] if contexts is None else contexts

    for i in range(scenario.scale_factor):
        try:
            contexts.extend(await schedule_apps(instance, f"{test_name}-{i}"))
        except FailedToScheduleAppError as e:
            contexts.extend(e.contexts)
            raise

    await validate_apps(instance, contexts)

    for ctx in contexts:
        app_nodes = await instance.driver.get_nodes_for_app(ctx)
        if not app_nodes:
            raise FailedToGetNodesForAppError(
                ctx.app, f"No nodes found running instance {ctx.uid}"
            )

        node = instance.rng.choice(app_nodes)
        log = logger.bind(app=ctx.key, instance_id=ctx.uid, node=node.name)

        await instance.driver.stop_sched_on_node(node)
        log.info("harness.scheduler.stopped", wait=wait)
        try:
            await asyncio.sleep(wait)
            await validate_context(instance, ctx)
        finally:
            await instance.driver.start_sched_on_node(node)
            log.info("harness.scheduler.started")

    await validate_apps(instance, contexts)
    return contexts
