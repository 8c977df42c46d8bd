"""
Provisioning of the embedded server's files: the unpacked distribution in the
base directory and the (possibly temporary) data directory.
"""
from .directories import DirectoryProvisioner, is_temporary_directory, purge_directory
from .distribution import DistributionUnpacker

__all__ = ['DirectoryProvisioner', 'DistributionUnpacker', 'is_temporary_directory', 'purge_directory']
