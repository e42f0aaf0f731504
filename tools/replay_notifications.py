# replay_notifications.py
#
# Webhooks can't reach a development machine, and in production one may get
# lost. Given assembly ids, this lists the notifications Transloadit sent for
# each one and then stores its results by polling the assembly. With
# --replay it asks Transloadit to send the notification again instead.
#
#   python tools/replay_notifications.py [--replay] <assembly_id> [...]

import logging
import sys

from transcode.errors import TranscodeError
from transcode.runtime import build_service

logger = logging.getLogger("replay_notifications")

USAGE = "usage: replay_notifications.py [--replay] <assembly_id> [<assembly_id> ...]"


def reconcile(service, assembly_id, replay=False):
    """Returns False if the assembly couldn't be handled."""
    try:
        for notification in service.client.get_notifications(assembly_id):
            logger.info(
                "%s: notification to %s was %s",
                assembly_id,
                notification.get("url") or notification.get("notify_url"),
                notification.get("response_status") or notification.get("notify_status") or "unknown",
            )

        if replay:
            service.client.replay_notification(assembly_id)
            logger.info("%s: notification replay requested", assembly_id)
            return True

        outcome = service.reconcile_assembly(assembly_id)
    except TranscodeError as e:
        logger.error("%s: %s", assembly_id, e)
        return False
    logger.info("%s: %s %s %s", assembly_id, outcome.kind.value, outcome.record_class, outcome.record_id)
    return True


def main(args):
    replay = "--replay" in args
    assembly_ids = [a for a in args if a != "--replay"]
    if not assembly_ids:
        print(USAGE)
        return 2

    service = build_service()
    try:
        failed = sum(not reconcile(service, assembly_id, replay) for assembly_id in assembly_ids)
    finally:
        service.client.close()
    return 1 if failed else 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    sys.exit(main(sys.argv[1:]))
