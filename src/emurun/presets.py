"""Built-in emulator presets.

The Google Cloud Pub/Sub and Datastore emulators, both driven through the
`gcloud` CLI. They are the default emulator set when no configuration file
names one.
"""

from emurun.supervisor import ManagedProcessSpec

_GCLOUD_EMULATORS = ("gcloud", "-q", "beta", "emulators")

PUBSUB = ManagedProcessSpec(
    name="pubsub",
    command=(*_GCLOUD_EMULATORS, "pubsub", "start"),
    env_command=(*_GCLOUD_EMULATORS, "pubsub", "env-init"),
    ready_sentinel="Server started, listening",
)

DATASTORE = ManagedProcessSpec(
    name="datastore",
    command=(*_GCLOUD_EMULATORS, "datastore", "start", "--no-legacy"),
    env_command=(*_GCLOUD_EMULATORS, "datastore", "env-init"),
    ready_sentinel="is now running",
)

PRESETS: dict[str, ManagedProcessSpec] = {
    PUBSUB.name: PUBSUB,
    DATASTORE.name: DATASTORE,
}
