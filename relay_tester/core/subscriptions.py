"""Subscription lifecycle for capability tests.

Translates between the caller-chosen internal subscription id and the
id the relay side associates with the subscription. Each call logs
exactly one event.
"""

from .logger import (
    ClosedSubscription,
    EstablishedSubscription,
    FailedToCloseSubscription,
    FailedToEstablishSubscription,
    ReportLogger,
)
from .models import (
    Filter,
    InternalSubscriptionId,
    Subscription,
    SubscriptionId,
    TransportError,
    unix_now,
)
from .ports import RelayPort


async def establish_subscription(
    name: str,
    relay: RelayPort,
    internal_id: InternalSubscriptionId,
    filter: Filter,
    logger: ReportLogger,
) -> Subscription | None:
    """Add a timestamp constraint to the filter and establish a subscription.

    The since-timestamp is taken before the request is sent so that only
    events created after setup can match.

    Returns:
        The subscription with its external id and since-timestamp, or None
        if it could not be established.
    """
    timestamp = unix_now()

    try:
        await relay.subscribe(internal_id, [filter.with_since(timestamp)])
        active = (await relay.active_subscriptions()).get(internal_id)
    except TransportError as error:
        logger.log(FailedToEstablishSubscription(name, error))
        return None

    if active is None:
        logger.log(
            FailedToEstablishSubscription(
                name,
                TransportError(f'subscription "{internal_id}" is missing from the relay registry'),
            )
        )
        return None

    logger.log(EstablishedSubscription(name, active.id))
    return Subscription(
        name=name,
        internal_id=internal_id,
        created_at=timestamp,
        external_id=active.id,
    )


async def close_subscription(
    name: str,
    relay: RelayPort,
    subscription_id: SubscriptionId,
    logger: ReportLogger,
) -> None:
    """Send CLOSE for the subscription without waiting for a reply."""
    try:
        await relay.send_close(subscription_id)
    except TransportError as error:
        logger.log(FailedToCloseSubscription(name, subscription_id, error))
        return
    logger.log(ClosedSubscription(name, subscription_id))
