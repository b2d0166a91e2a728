from herald.db.models.alert_group import AlertGroup
from herald.db.models.alert_plugin_instance import AlertInstanceType, AlertPluginInstance, WarningType
from herald.db.models.plugin_define import PluginDefine

__all__ = ["AlertGroup", "AlertInstanceType", "AlertPluginInstance", "PluginDefine", "WarningType"]
