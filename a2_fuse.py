#!/usr/bin/env python3
"""
Apple II FUSE Filesystem Implementation.

This module provides a read-only FUSE (Filesystem in Userspace) interface for
Apple II disk images. It allows mounting DOS 3.3 (.dsk, .do) and ProDOS
(.po, .hdv, .2mg) images as local directories, so standard tools (ls, cp,
cat, etc.) can read the files. ProDOS subdirectories appear as directories.

Dependencies:
    - fusepy
    - a2_driver
"""

import os
import sys
import errno
import time
import logging
import argparse

# Configure FUSE library path for macOS with FUSE-T
if sys.platform == 'darwin' and not os.environ.get('FUSE_LIBRARY_PATH'):
    if os.path.exists('/usr/local/lib/libfuse-t.dylib'):
        os.environ['FUSE_LIBRARY_PATH'] = '/usr/local/lib/libfuse-t.dylib'

from fuse import FUSE, FuseOSError, Operations
from a2_driver import detect_format, host_paths, ProDOSFileSystem, BLOCK_SIZE, BYTES_PER_SECTOR

logger = logging.getLogger(__name__)


class A2_FUSE(Operations):
    """
    FUSE Operations implementation for Apple II filesystems.

    Maps POSIX paths onto catalog entries. File contents are decoded on
    first access and cached for the life of the mount.
    """
    def __init__(self, disk_image, fmt='auto', fs=None):
        self.disk_image = disk_image
        self.fs = fs if fs is not None else detect_format(disk_image, fmt=fmt)
        self.mount_time = time.time()
        logger.info("Mounted %s (%s)", disk_image, self.fs.system_type)

        self.files = {}     # path -> entry
        self.dirs = {}      # path -> set of child names
        self.contents = {}  # path -> bytes
        self._refresh_files()

    def _refresh_files(self):
        self.files = {}
        self.dirs = {'/': set()}
        self.contents = {}

        for path, entry in host_paths(self.fs):
            parent, _, name = path.rpartition('/')
            self.dirs.setdefault(parent or '/', set()).add(name)

            if entry.is_directory:
                self.dirs.setdefault(path, set())
            else:
                self.files[path] = entry

    def _content(self, path):
        if path not in self.contents:
            content = self.files[path].content
            self.contents[path] = bytes(content) if content else b''
        return self.contents[path]

    def getattr(self, path, fh=None):
        if path in self.dirs:
            return dict(st_mode=(0o40555), st_nlink=2,
                        st_ctime=self.mount_time, st_mtime=self.mount_time, st_atime=self.mount_time)

        if path in self.files:
            entry = self.files[path]
            size = len(self._content(path))
            st = dict(st_mode=(0o100444), st_nlink=1, st_size=size,
                      st_ctime=self.mount_time, st_mtime=self.mount_time, st_atime=self.mount_time)
            logger.debug("getattr %s -> %s (%d bytes)", path, entry.type, size)
            return st

        raise FuseOSError(errno.ENOENT)

    def readdir(self, path, fh):
        if path not in self.dirs:
            raise FuseOSError(errno.ENOENT)
        return ['.', '..'] + sorted(self.dirs[path])

    def open(self, path, flags):
        if path not in self.files:
            raise FuseOSError(errno.ENOENT)
        if flags & (os.O_WRONLY | os.O_RDWR):
            raise FuseOSError(errno.EROFS)
        return 0

    def read(self, path, length, offset, fh):
        if path not in self.files:
            raise FuseOSError(errno.ENOENT)
        return self._content(path)[offset:offset + length]

    def statfs(self, path):
        if isinstance(self.fs, ProDOSFileSystem):
            blocks = self.fs.total_blocks or self.fs.disk.block_count
            return dict(f_bsize=BLOCK_SIZE, f_frsize=BLOCK_SIZE, f_blocks=blocks,
                        f_bfree=0, f_bavail=0, f_namemax=15)
        free = self.fs.get_free_space() // BYTES_PER_SECTOR
        blocks = self.fs.disk.file_size // BYTES_PER_SECTOR
        return dict(f_bsize=BYTES_PER_SECTOR, f_frsize=BYTES_PER_SECTOR, f_blocks=blocks,
                    f_bfree=free, f_bavail=free, f_namemax=30)

    def access(self, path, mode):
        if path not in self.files and path not in self.dirs:
            raise FuseOSError(errno.ENOENT)
        if mode & os.W_OK:
            raise FuseOSError(errno.EROFS)
        return 0

    # Images are never modified
    def _read_only(self, *args, **kwargs):
        raise FuseOSError(errno.EROFS)

    create = _read_only
    write = _read_only
    truncate = _read_only
    unlink = _read_only
    mkdir = _read_only
    rmdir = _read_only
    rename = _read_only
    chmod = _read_only
    chown = _read_only
    utimens = _read_only


def main(argv=None):
    # Allow overriding program name via environment variable (for wrapper scripts)
    prog_name = os.environ.get("A2_PROG_NAME")

    parser = argparse.ArgumentParser(
        prog=prog_name,
        description="Mount Apple II disk images (DOS 3.3/ProDOS) as a read-only FUSE filesystem.",
        epilog="Example: a2mount disk.po ./mnt"
    )
    parser.add_argument("disk_image", help="Path to the disk image file (.dsk, .do, .po, .hdv, .2mg)")
    parser.add_argument("mountpoint", help="Directory to mount the filesystem")
    parser.add_argument("--format", dest="fmt", choices=["auto", "dos33", "prodos"], default="auto",
                        help="Override the extension-based format detection")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--foreground", "-f", action="store_true", help="Run in foreground (default: False)")

    args = parser.parse_args(argv)

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    if not os.path.exists(args.mountpoint):
        print(f"Error: Mount point '{args.mountpoint}' does not exist.")
        sys.exit(1)

    if not os.path.exists(args.disk_image):
        print(f"Error: File '{args.disk_image}' not found.")
        sys.exit(1)

    try:
        # foreground=True blocks, foreground=False daemonizes
        FUSE(A2_FUSE(args.disk_image, fmt=args.fmt), args.mountpoint,
             foreground=args.foreground, ro=True, nothreads=True)
    except RuntimeError as e:
        print(f"Failed to mount: {e}")
        print("Ensure FUSE-T or macFUSE is installed and libfuse is available.")
        sys.exit(1)


if __name__ == '__main__':
    main()
