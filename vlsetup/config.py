"""Fixed configuration values and the virt-lightning config document."""
import configparser
import io
import os
from dataclasses import dataclass
from pathlib import Path

from vlsetup.utils import get_real_home, get_real_user

IMAGES_URL = "https://virt-lightning.org/images/"
VL_PACKAGE = "virt-lightning"


@dataclass(frozen=True)
class Settings:
    """Paths and names the provisioning steps work with."""

    user: str
    home: Path
    vl_bin: str = "vl"
    vl_app: str = "virt-lightning"
    vl_package: str = VL_PACKAGE
    inject_packages: tuple = ("requests",)
    images_url: str = IMAGES_URL
    libvirt_group: str = "libvirt"
    qemu_probe_dir: Path = Path("/var/lib/libvirt/qemu/")

    @classmethod
    def from_environment(cls) -> "Settings":
        """Build settings for the invoking user, honoring env overrides."""
        return cls(
            user=get_real_user(),
            home=Path(get_real_home()),
            vl_package=os.environ.get('VL_SETUP_PACKAGE', VL_PACKAGE),
            images_url=os.environ.get('VL_SETUP_IMAGES_URL', IMAGES_URL),
        )

    @property
    def base_dir(self) -> Path:
        """Root of the user-space virt-lightning tree."""
        return self.home / ".local" / "share" / "virt-lightning"

    @property
    def image_dir(self) -> Path:
        """Cache of downloaded upstream images."""
        return self.base_dir / "images" / "upstream"

    @property
    def pool_dir(self) -> Path:
        """Storage pool holding VM disks."""
        return self.base_dir / "pool"

    @property
    def upstream_dir(self) -> Path:
        """Operator-writable staging directory inside the pool."""
        return self.pool_dir / "upstream"

    @property
    def config_dir(self) -> Path:
        """Directory holding config.ini."""
        return self.home / ".config" / "virt-lightning"

    @property
    def config_file(self) -> Path:
        """The virt-lightning config file."""
        return self.config_dir / "config.ini"

    def ancestor_chain(self) -> list:
        """Directories from the parent of home (usually /home) down to base_dir."""
        stop = self.home.parent
        chain = [self.base_dir]
        for parent in self.base_dir.parents:
            chain.append(parent)
            if parent == stop:
                break
        return list(reversed(chain))


def render_config(settings: Settings) -> str:
    """Render the default config.ini pointing storage_dir at the pool."""
    parser = configparser.ConfigParser()
    parser['main'] = {'storage_dir': str(settings.pool_dir)}
    buffer = io.StringIO()
    parser.write(buffer)
    return buffer.getvalue()


def read_storage_dir(path: Path):
    """Return storage_dir from an existing config file, or None."""
    parser = configparser.ConfigParser()
    parser.read(path)
    return parser.get('main', 'storage_dir', fallback=None)
