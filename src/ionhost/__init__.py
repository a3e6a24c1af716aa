from __future__ import annotations

from ionhost.core.dispatcher import Dispatcher
from ionhost.core.events import APP_READY, APP_SHUTDOWN, Event, Listener, ListenerFunc
from ionhost.core.models import IonSettings
from ionhost.provisioning.provisioner import (
	ProvisionResult,
	RuntimeBundle,
	SupportTree,
	deploy_tree,
	provision,
)
from ionhost.provisioning.retriever import (
	ArchiveRetriever,
	fallback_archive_retriever,
	file_archive_retriever,
	resource_archive_retriever,
	url_archive_retriever,
)
from ionhost.runtime.controller import Ion

__all__ = [
	"APP_READY",
	"APP_SHUTDOWN",
	"ArchiveRetriever",
	"Dispatcher",
	"Event",
	"Ion",
	"IonSettings",
	"Listener",
	"ListenerFunc",
	"ProvisionResult",
	"RuntimeBundle",
	"SupportTree",
	"deploy_tree",
	"fallback_archive_retriever",
	"file_archive_retriever",
	"provision",
	"resource_archive_retriever",
	"url_archive_retriever",
]
