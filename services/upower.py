from dbus.exceptions import DBusException
from loguru import logger


class UPowerSource:
    UPOWER_NAME = "org.freedesktop.UPower"
    UPOWER_PATH = "/org/freedesktop/UPower"
    PROPS_IFACE = "org.freedesktop.DBus.Properties"

    def __init__(self, bus, reconciler):
        self.bus = bus
        self.reconciler = reconciler
        self._match = None

    def _get_all(self):
        obj = self.bus.get_object(self.UPOWER_NAME, self.UPOWER_PATH)
        return obj.GetAll(self.UPOWER_NAME, dbus_interface=self.PROPS_IFACE)

    def start(self):
        """Subscribe to property changes and push the current values once."""
        self._match = self.bus.add_signal_receiver(
            self._on_properties_changed,
            signal_name="PropertiesChanged",
            dbus_interface=self.PROPS_IFACE,
            bus_name=self.UPOWER_NAME,
            path=self.UPOWER_PATH,
        )
        self.refresh()

    def stop(self):
        if self._match is not None:
            self._match.remove()
            self._match = None

    def _on_properties_changed(self, interface, changed, invalidated):
        self.refresh()

    def refresh(self):
        """Read OnBattery, LidIsPresent and LidIsClosed and hand them over."""
        try:
            props = self._get_all()
        except DBusException as e:
            logger.warning(f"Failed to read UPower properties: {e}")
            return

        on_battery = bool(props.get("OnBattery", False))
        lid_present = bool(props.get("LidIsPresent", False))
        lid_closed = bool(props.get("LidIsClosed", False))
        logger.info(
            f"power: on_battery={on_battery}, lid_present={lid_present}, "
            f"lid_closed={lid_closed}"
        )
        self.reconciler.update_power(on_battery, lid_present, lid_closed)
