from herald.controllers.alert_instances import AlertPluginInstanceController

__all__ = ["AlertPluginInstanceController"]
