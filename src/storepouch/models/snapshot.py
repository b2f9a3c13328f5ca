"""Host status snapshot models.

These mirror the structure produced by the agent's hardware probes. The
probes themselves live outside this package; storepouch only stores what
a :class:`~storepouch.snapshot.SnapshotProvider` hands it.
"""

from __future__ import annotations

from pydantic import ConfigDict, Field

from storepouch.models._base import EpochMs, StoreBaseModel


class UsbDevice(StoreBaseModel):
    dev: str
    type: str = ""
    hub: str = ""
    product: str = ""
    id: str = ""


class Drive(StoreBaseModel):
    filesystem: str
    blocks: str = ""
    used: str = ""
    available: str = ""
    capacity: str = ""
    mounted: str = ""


class ScanResult(StoreBaseModel):
    essid: str
    mac: str = ""
    signal: str = ""


class Network(StoreBaseModel):
    type: str
    mac: str = ""
    interface: str = ""
    essid: str | None = None
    scan: list[ScanResult] | None = None
    ip: str | None = None
    gateway: str | None = None


class VideoChannel(StoreBaseModel):
    dev: str
    label: str = ""
    active: bool = False


class VideoDevice(StoreBaseModel):
    model_config = ConfigDict(protected_namespaces=())

    dev: str
    label: str = ""
    active: bool = False
    channels: list[VideoChannel] = Field(default_factory=list)
    # The probes emit these two keys in snake_case.
    model_id: str = Field(default="", alias="model_id")
    vendor_id: str = Field(default="", alias="vendor_id")
    resolution: str = ""
    bus: str = ""
    serial: str = ""


class AudioChannel(StoreBaseModel):
    dev: str
    active: bool = False


class AudioDevice(StoreBaseModel):
    label: str = ""
    dev: str
    pulsename: str = ""
    active: bool = False
    channels: list[AudioChannel] = Field(default_factory=list)


class VideoInputs(StoreBaseModel):
    inputs: list[VideoDevice] = Field(default_factory=list)


class AudioInputs(StoreBaseModel):
    inputs: list[AudioDevice] = Field(default_factory=list)


class StatusSnapshot(StoreBaseModel):
    """Immutable point-in-time capture of host hardware/network/boot state.

    Parameters
    ----------
    boot_id : str
        Identifier of the current boot; stable until the host reboots.
    boot_time : int
        Boot timestamp (epoch ms).
    updated_at : int
        Capture timestamp (epoch ms).
    """

    boot_id: str
    boot_time: EpochMs
    updated_at: EpochMs
    usb_devices: list[UsbDevice] = Field(default_factory=list)
    drives: list[Drive] = Field(default_factory=list)
    networks: list[Network] = Field(default_factory=list)
    video: VideoInputs = Field(default_factory=VideoInputs)
    audio: AudioInputs = Field(default_factory=AudioInputs)
