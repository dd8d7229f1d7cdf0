from dataclasses import dataclass, field
from typing import List
import os
import yaml
from pathlib import Path

from simscan.core.hasher import HashType


def _default_workers() -> int:
    return min(8, os.cpu_count() or 1)


@dataclass
class ScanConfig:
    """Default parameters for a similarity scan"""
    distance: int = 5
    hash_type: str = HashType.PHASH.value  # Options: ahash, phash, dhash
    hash_size: int = 16  # hash is hash_size x hash_size bits
    image_extensions: List[str] = field(
        default_factory=lambda: ['.jpg', '.jpeg', '.png']
    )


@dataclass
class SystemConfig:
    """System-wide configuration"""
    n_workers: int = field(default_factory=_default_workers)  # hashing threads
    job_workers: int = 2  # concurrent scans
    log_level: str = "INFO"
    log_dir: str = "logs"
    max_image_pixels: int = 100_000_000  # PIL decompression bomb guard

    # Scan defaults
    scan: ScanConfig = field(default_factory=ScanConfig)

    def save(self, path: str = "config.yaml"):
        """Save configuration to YAML file"""
        config_dict = {
            'n_workers': self.n_workers,
            'job_workers': self.job_workers,
            'log_level': self.log_level,
            'log_dir': self.log_dir,
            'max_image_pixels': self.max_image_pixels,
            'scan': {
                'distance': self.scan.distance,
                'hash_type': self.scan.hash_type,
                'hash_size': self.scan.hash_size,
                'image_extensions': list(self.scan.image_extensions)
            }
        }

        with open(path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, indent=2)

    @classmethod
    def load(cls, path: str = "config.yaml") -> 'SystemConfig':
        """Load configuration from YAML file"""
        if not Path(path).exists():
            return cls()  # Return default config

        with open(path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        config = cls()

        # Load system settings
        config.n_workers = config_dict.get('n_workers', config.n_workers)
        config.job_workers = config_dict.get('job_workers', config.job_workers)
        config.log_level = config_dict.get('log_level', config.log_level)
        config.log_dir = config_dict.get('log_dir', config.log_dir)
        config.max_image_pixels = config_dict.get('max_image_pixels', config.max_image_pixels)

        # Load scan settings
        if 'scan' in config_dict:
            sc = config_dict['scan'] or {}
            config.scan = ScanConfig(
                distance=sc.get('distance', config.scan.distance),
                hash_type=HashType.parse(sc.get('hash_type', config.scan.hash_type)).value,
                hash_size=sc.get('hash_size', config.scan.hash_size),
                image_extensions=sc.get('image_extensions', config.scan.image_extensions)
            )

        return config
