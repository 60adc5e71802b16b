#!/usr/bin/env python3
"""
Apple II Disk Driver Module.

This module provides classes and functions to read Apple II disk images
(.dsk, .do, .po, .hdv, .2mg) and their filesystems (DOS 3.3, ProDOS).

Classes:
    DiskImage: Base class holding the raw, read-only image buffer.
    DOS33Image: Track/sector addressing for 35x16x256 DOS 3.3 images.
    ProDOSImage: Block addressing for 512-byte block ProDOS images.
    DOS33FileSystem: Catalog walker and file reader for DOS 3.3.
    ProDOSFileSystem: Directory walker and file reader for ProDOS.

Functions:
    detect_format(filename, data=None): Picks the filesystem from the file extension.
"""

import os
import sys
import logging
import argparse

log = logging.getLogger(__name__)

# DOS 3.3 geometry
BYTES_PER_SECTOR = 256
TRACKS_PER_DISK = 35
SECTORS_PER_TRACK = 16
DOS33_IMAGE_SIZE = TRACKS_PER_DISK * SECTORS_PER_TRACK * BYTES_PER_SECTOR
VTOC_TRACK = 17
VTOC_SECTOR = 0
CATALOG_ENTRY_OFFSET = 0x0B
CATALOG_ENTRY_SIZE = 0x23
CATALOG_ENTRIES_PER_SECTOR = 7
TS_LIST_OFFSET = 0x0C
TS_PAIRS_PER_SECTOR = 122

# ProDOS geometry
BLOCK_SIZE = 512
MAX_BLOCKS = 65536
MAX_IMAGE_SIZE = MAX_BLOCKS * BLOCK_SIZE
VOLUME_DIRECTORY_BLOCK = 2
DIRECTORY_ENTRY_OFFSET = 4
PRODOS_ENTRY_SIZE = 0x27
INDEX_POINTERS = 256
MASTER_INDEX_POINTERS = 128

PRODOS_EXTENSIONS = ('.po', '.hdv', '.2mg')

# DOS 3.3 file types (low 7 bits of the type byte)
DOS33_FILE_TYPES = {
    0x00: 'T',   # Text
    0x01: 'I',   # Integer BASIC
    0x02: 'A',   # Applesoft BASIC
    0x04: 'B',   # Binary
    0x08: 'S',   # Special (type S)
    0x10: 'R',   # Relocatable
    0x20: 'a',   # new A type
    0x40: 'b',   # new B type
}

# ProDOS storage types (high nibble of entry byte 0)
DELETED = 0x0
SEEDLING = 0x1            # key block holds data (0-512 bytes)
SAPLING = 0x2             # key block is a list of data blocks (513-131072 bytes)
TREE = 0x3                # key block is a list of sapling index blocks (128KB-16MB)
PASCAL_AREA = 0x4         # Pascal area on ProFile hard disk (ProDOS 8 TN #25)
GSOS_FORKED = 0x5         # GS/OS forked file
SUBDIRECTORY = 0xD
SUBDIRECTORY_HEADER = 0xE
VOLUME_DIRECTORY_HEADER = 0xF

STORAGE_TYPES = {
    DELETED: "Deleted",
    SEEDLING: "Seedling",
    SAPLING: "Sapling",
    TREE: "Tree",
    PASCAL_AREA: "Pascal area",
    GSOS_FORKED: "GS/OS forked file",
    SUBDIRECTORY: "Subdirectory",
    SUBDIRECTORY_HEADER: "Subdirectory header",
    VOLUME_DIRECTORY_HEADER: "Volume directory header",
}


def le16(data, offset):
    """Little-endian 16-bit value at offset."""
    return data[offset] | (data[offset + 1] << 8)


def format_binary(data):
    """Render bytes as 8 binary digits per byte, e.g. b'\\xc3' -> '11000011'."""
    return "".join(f"{b:08b}" for b in data)


def is_prodos_filename(filename):
    return filename.lower().endswith(PRODOS_EXTENSIONS)


class DiskImage:
    """
    Base class for Apple II Disk Images.

    The image is held in memory as an immutable bytes object and every read
    returns a memoryview slice, so no sector or block is copied until a
    caller asks for it.

    Attributes:
        filename (str): Path the image was loaded from, if any.
        data (bytes): The raw image, or None when no buffer was supplied.
        expected_size (int): Size the format normally has, for diagnostics.
    """
    expected_size = None

    def __init__(self, data, filename=None):
        self.filename = filename
        if data is None:
            self.data = None
            self.view = None
        else:
            self.data = bytes(data)
            self.view = memoryview(self.data)
        self._check_size()

    @property
    def file_size(self):
        return len(self.data) if self.data is not None else 0

    def _check_size(self):
        if self.data is not None and self.expected_size is not None:
            if self.file_size != self.expected_size:
                log.warning("Image size %d != %d (expected %s)",
                            self.file_size, self.expected_size, self.get_geometry())

    def _slice(self, offset, length):
        # Short images return None instead of a truncated view
        if offset + length > len(self.data):
            return None
        return self.view[offset:offset + length]

    def get_geometry(self):
        """Return a string describing the disk geometry."""
        raise NotImplementedError


class DOS33Image(DiskImage):
    """
    DOS 3.3 sector-addressed image: 35 tracks of 16 sectors of 256 bytes,
    stored in DOS logical sector order (.dsk / .do).
    """
    expected_size = DOS33_IMAGE_SIZE

    def read_sector(self, track, sector):
        """
        Read a sector from the disk.

        Args:
            track (int): Track number (0-34).
            sector (int): Sector number (0-15).

        Returns:
            memoryview: 256 bytes of sector data, or None if out of range.
        """
        if self.data is None:
            return None
        if track < 0 or track >= TRACKS_PER_DISK:
            return None
        if sector < 0 or sector >= SECTORS_PER_TRACK:
            return None

        offset = (track * SECTORS_PER_TRACK + sector) * BYTES_PER_SECTOR
        return self._slice(offset, BYTES_PER_SECTOR)

    def get_geometry(self):
        return f"DOS 3.3 ({TRACKS_PER_DISK} Tracks, {SECTORS_PER_TRACK} Sectors)"


class ProDOSImage(DiskImage):
    """
    ProDOS block-addressed image: up to 65536 blocks of 512 bytes (.po, .hdv).
    """

    def _check_size(self):
        if self.data is None:
            return
        if self.file_size % BLOCK_SIZE or self.file_size > MAX_IMAGE_SIZE:
            log.warning("Image size %d is not a multiple of %d up to %d bytes",
                        self.file_size, BLOCK_SIZE, MAX_IMAGE_SIZE)

    @property
    def block_count(self):
        return min(self.file_size // BLOCK_SIZE, MAX_BLOCKS)

    def read_block(self, block):
        """
        Read a 512-byte block.

        Args:
            block (int): Block number (0-65535).

        Returns:
            memoryview: 512 bytes of block data, or None if out of range.
        """
        if self.data is None:
            return None
        if block < 0 or block >= MAX_BLOCKS:
            return None

        offset = block * BLOCK_SIZE
        return self._slice(offset, BLOCK_SIZE)

    def get_geometry(self):
        return f"ProDOS ({self.block_count} Blocks)"


class DOS33File:
    """
    A file from a DOS 3.3 catalog.

    name, size, type and flags are decoded once; content is read from the
    Track/Sector list each time it is requested.
    """
    is_directory = False

    def __init__(self, fs, raw, ts_list_track, ts_list_sector, file_type, name, sector_count):
        self.fs = fs
        self.raw = raw
        self.ts_list_track = ts_list_track
        self.ts_list_sector = ts_list_sector
        self.file_type = file_type
        self.name = name
        self.sector_count = sector_count

        # DOS 3.3 doesn't store a byte length, only the sectors used
        self.size = sector_count * BYTES_PER_SECTOR
        self.type = f"{file_type:02x}"
        self.flags = f"{file_type:02x}"
        self.locked = bool(file_type & 0x80)
        self.file_type_code = file_type & 0x7F
        self.type_name = DOS33_FILE_TYPES.get(self.file_type_code, f"?{self.file_type_code:02X}")

    @property
    def content(self):
        """File bytes, or None if the first T/S list sector can't be read."""
        return self.fs.read_file_content(self)

    def __repr__(self):
        return f"<DOS33File {self.name!r} type={self.type} size={self.size}>"


class DOS33FileSystem:
    """
    High-level interface for DOS 3.3 filesystems.

    Handles the VTOC, the catalog sector chain and Track/Sector lists.
    """
    def __init__(self, disk, logger=None):
        """
        Args:
            disk (DOS33Image): The underlying disk image object.
            logger (logging.Logger): Diagnostics sink, defaults to this module's logger.
        """
        self.disk = disk
        self.logger = logger if logger is not None else log
        self.system_type = "DOS 3.3"

    def read_vtoc(self):
        """
        Read the Volume Table Of Contents at track 17, sector 0.

        Returns:
            dict: VTOC fields, or None if the sector is unreadable.
        """
        vtoc = self.disk.read_sector(VTOC_TRACK, VTOC_SECTOR)
        if vtoc is None:
            return None

        return {
            'dos_version': vtoc[3],
            'volume_number': vtoc[6],
            'tracks_per_disk': vtoc[0x34],
            'sectors_per_track': vtoc[0x35],
            'bytes_per_sector': le16(vtoc, 0x36),
            'first_catalog_track': vtoc[1],
            'first_catalog_sector': vtoc[2],
            'free_sectors': {
                'count': le16(vtoc, 0x31),
                # One byte per track, bit j set = sector j free
                'bitmap': [
                    [bool(vtoc[0x38 + i] & (1 << j)) for j in range(8)]
                    for i in range(TRACKS_PER_DISK)
                ],
            },
        }

    def list_files(self):
        """
        List all files in the catalog, in on-disk order.

        Returns:
            list: DOS33File objects for every live catalog slot.
        """
        self.logger.debug("Listing files on DOS 3.3 disk")
        vtoc = self.read_vtoc()
        if vtoc is None:
            return []
        return self.read_catalog(vtoc['first_catalog_track'], vtoc['first_catalog_sector'])

    def read_catalog(self, track, sector):
        files = []
        visited = set()

        while track != 0:
            if (track, sector) in visited:
                self.logger.warning("Catalog chain loops back to T%d S%d, stopping", track, sector)
                break
            visited.add((track, sector))

            catalog = self.read_catalog_sector(track, sector)
            if catalog is None:
                # Unreadable link: keep what we have
                break

            # Track 0 = never used, 0xFF = deleted
            files.extend(e for e in catalog['entries'] if e.ts_list_track not in (0x00, 0xFF))

            track = catalog['next_track']
            sector = catalog['next_sector']

        return files

    def read_catalog_sector(self, track, sector):
        data = self.disk.read_sector(track, sector)
        if data is None:
            return None

        entries = []
        for i in range(CATALOG_ENTRIES_PER_SECTOR):
            offset = CATALOG_ENTRY_OFFSET + i * CATALOG_ENTRY_SIZE
            entries.append(self.parse_catalog_entry(data[offset:offset + CATALOG_ENTRY_SIZE]))

        return {
            'next_track': data[0x01],
            'next_sector': data[0x02],
            'entries': entries,
        }

    def parse_catalog_entry(self, entry):
        """
        Decode a 35-byte catalog slot.

        +$00 / 1: track of first T/S list sector (0 = unused, $FF = deleted)
        +$01 / 1: sector of first T/S list sector
        +$02 / 1: file type, bit 7 = locked
        +$03 /16: file name, high bit set, padded with $A0
        +$21 / 2: sector count
        """
        name = "".join(" " if b == 0xA0 else chr(b & 0x7F) for b in entry[0x03:0x13]).strip()
        return DOS33File(
            self,
            raw=entry,
            ts_list_track=entry[0x00],
            ts_list_sector=entry[0x01],
            file_type=entry[0x02],
            name=name,
            sector_count=le16(entry, 0x21),
        )

    def read_file_content(self, entry):
        """
        Read the content of a file by walking its Track/Sector lists.

        Each T/S list sector holds up to 122 (track, sector) pairs from offset
        $0C and links to the next T/S list sector at offsets $01/$02. A data
        track of 0 ends the file.

        Returns:
            bytes: File data, or None if the first T/S list sector is unreadable.
        """
        ts_list = self.disk.read_sector(entry.ts_list_track, entry.ts_list_sector)
        if ts_list is None:
            return None

        content = bytearray()
        visited = {(entry.ts_list_track, entry.ts_list_sector)}

        while True:
            for i in range(TS_PAIRS_PER_SECTOR):
                track = ts_list[TS_LIST_OFFSET + i * 2]
                sector = ts_list[TS_LIST_OFFSET + i * 2 + 1]

                # Track 0 means end of file
                if track == 0:
                    return bytes(content)

                data = self.disk.read_sector(track, sector)
                if data is not None:
                    content.extend(data)

            next_track = ts_list[0x01]
            next_sector = ts_list[0x02]
            if next_track == 0:
                break
            if (next_track, next_sector) in visited:
                self.logger.warning("T/S list for %s loops back to T%d S%d, stopping",
                                    entry.name, next_track, next_sector)
                break
            visited.add((next_track, next_sector))

            ts_list = self.disk.read_sector(next_track, next_sector)
            if ts_list is None:
                break

        return bytes(content)

    def get_free_space(self):
        """Free space in bytes, counted from the VTOC bitmap."""
        vtoc = self.read_vtoc()
        if vtoc is None:
            return 0
        free = sum(sum(track) for track in vtoc['free_sectors']['bitmap'])
        return free * BYTES_PER_SECTOR


class ProDOSEntry:
    """
    Base class for a ProDOS directory entry.

    The storage type picks the subclass; subclasses decode their own fields
    from the 0x27-byte slot. Entries that carry no usable fields (deleted,
    Pascal area, GS/OS forks, unknown tags) keep just the raw bytes, the
    storage type and the name.
    """
    is_directory = False

    def __init__(self, fs, raw, storage_type, name):
        self.fs = fs
        self.raw = raw
        self.storage_type = storage_type
        self.name = name
        self.size = 0
        self.type = f"{storage_type}::"
        self.flags = ""

    @property
    def storage_type_name(self):
        return STORAGE_TYPES.get(self.storage_type, f"${self.storage_type:X}")

    @property
    def content(self):
        return self.fs.read_file_content(self)

    def __repr__(self):
        return f"<{type(self).__name__} {self.name!r} type={self.type} size={self.size}>"


class DeletedEntry(ProDOSEntry):
    pass


class PascalAreaEntry(ProDOSEntry):
    pass


class ForkedFileEntry(ProDOSEntry):
    pass


class UnknownEntry(ProDOSEntry):
    pass


class FileEntry(ProDOSEntry):
    """
    Seedling, sapling or tree file.

    +$00 / 1: storage type / name length
    +$01 /15: file name
    +$10 / 1: file type
    +$11 / 2: key pointer (block number where storage begins)
    +$13 / 2: blocks used
    +$15 / 3: EOF
    +$18 / 4: creation date/time
    +$1c / 2: version/min-version
    +$1e / 1: access flags
    +$1f / 2: aux type
    +$21 / 4: modification date/time
    +$25 / 2: header pointer (key block of the directory holding this file)
    """
    def __init__(self, fs, raw, storage_type, name):
        super().__init__(fs, raw, storage_type, name)
        self.file_type = raw[0x10]
        self.key_pointer = le16(raw, 0x11)
        self.blocks_used = le16(raw, 0x13)
        self.eof = raw[0x15] | (raw[0x16] << 8) | (raw[0x17] << 16)
        self.creation_time = format_binary(raw[0x18:0x1c])
        self.version = raw[0x1c]
        self.min_version = raw[0x1d]
        self.access_flags = format_binary(raw[0x1e:0x1f])
        self.aux_type = le16(raw, 0x1f)
        self.modification_time = format_binary(raw[0x21:0x25])
        self.header_pointer = le16(raw, 0x25)

        # Whole blocks, so this can overstate the EOF by up to one block
        self.size = self.blocks_used * BLOCK_SIZE
        self.type = f"{storage_type}:{self.file_type}:{self.aux_type}"
        self.flags = self.access_flags


class SubdirectoryEntry(FileEntry):
    """Subdirectory file; same layout as a regular file, key pointer is its first directory block."""
    is_directory = True


class DirectoryHeader(ProDOSEntry):
    """Fields shared by volume and subdirectory headers."""
    def __init__(self, fs, raw, storage_type, name):
        super().__init__(fs, raw, storage_type, name)
        self.creation_time = format_binary(raw[0x18:0x1c])
        self.version = raw[0x1c]
        self.min_version = raw[0x1d]
        self.access_flags = format_binary(raw[0x1e:0x1f])
        self.entry_length = raw[0x1f]
        self.entries_per_block = raw[0x20]
        self.active_entries = le16(raw, 0x21)
        self.flags = self.access_flags


class SubdirectoryHeader(DirectoryHeader):
    """
    +$23 / 2: parent pointer (block of the directory with the entry for this dir)
    +$25 / 1: parent entry number (1-N)
    +$26 / 1: parent entry length
    """
    def __init__(self, fs, raw, storage_type, name):
        super().__init__(fs, raw, storage_type, name)
        self.parent_pointer = le16(raw, 0x23)
        self.parent_entry_number = raw[0x25]
        self.parent_entry_length = raw[0x26]


class VolumeDirectoryHeader(DirectoryHeader):
    """
    +$16 / 2: lower-case flags (TN.GSOS.008)
    +$23 / 2: volume bitmap start block
    +$25 / 2: total blocks in volume
    """
    def __init__(self, fs, raw, storage_type, name):
        super().__init__(fs, raw, storage_type, name)
        self.lower_case_flags = le16(raw, 0x16)
        self.bitmap_pointer = le16(raw, 0x23)
        self.total_blocks = le16(raw, 0x25)


ENTRY_CLASSES = {
    DELETED: DeletedEntry,
    SEEDLING: FileEntry,
    SAPLING: FileEntry,
    TREE: FileEntry,
    PASCAL_AREA: PascalAreaEntry,
    GSOS_FORKED: ForkedFileEntry,
    SUBDIRECTORY: SubdirectoryEntry,
    SUBDIRECTORY_HEADER: SubdirectoryHeader,
    VOLUME_DIRECTORY_HEADER: VolumeDirectoryHeader,
}


class ProDOSFileSystem:
    """
    High-level interface for ProDOS filesystems.

    Handles directory block chains, entry decoding and seedling/sapling/tree
    file reconstruction.
    """
    def __init__(self, disk, logger=None):
        """
        Args:
            disk (ProDOSImage): The underlying disk image object.
            logger (logging.Logger): Diagnostics sink, defaults to this module's logger.
        """
        self.disk = disk
        self.logger = logger if logger is not None else log
        self.system_type = "ProDOS"
        self.total_blocks = self._declared_total_blocks()

    def _declared_total_blocks(self):
        # Block count from the volume header, 0 if there is no usable header
        data = self.disk.read_block(VOLUME_DIRECTORY_BLOCK)
        if data is None:
            return 0
        if data[DIRECTORY_ENTRY_OFFSET] >> 4 != VOLUME_DIRECTORY_HEADER:
            return 0
        total = le16(data, DIRECTORY_ENTRY_OFFSET + 0x25)
        # A volume must at least hold its own directory block
        if total <= VOLUME_DIRECTORY_BLOCK:
            self.logger.warning("Volume header declares %d blocks, ignoring", total)
            return 0
        return total

    def read_block(self, block):
        """
        Read a block, treating pointers past the volume's declared size as absent.
        """
        if self.total_blocks and block >= self.total_blocks:
            self.logger.debug("Block %d is past the volume end (%d)", block, self.total_blocks)
            return None
        return self.disk.read_block(block)

    def list_files(self):
        """
        List the entries of the volume directory, in scan order.

        Returns:
            list: ProDOSEntry objects, including the volume header entry.
        """
        self.logger.debug("Listing files on ProDOS disk")
        # Block 0: boot loader, block 1: SOS boot loader (Apple III)
        return self.read_directory(VOLUME_DIRECTORY_BLOCK)

    def read_directory(self, block, include_unknown=False):
        """
        Walk a directory block chain starting at block.

        Args:
            block (int): First block of the volume directory or a subdirectory.
            include_unknown (bool): Keep entries with unrecognized storage types.

        Returns:
            list: Decoded entries in scan order.
        """
        entries = []
        visited = set()

        while block:
            if block in visited:
                self.logger.warning("Directory chain loops back to block %d, stopping", block)
                break
            visited.add(block)

            data = self.read_block(block)
            if data is None:
                break

            # +$00: previous block, +$02: next block
            next_block = le16(data, 2)

            # 13 entries of $27 bytes; the last byte of the block is unused
            offset = DIRECTORY_ENTRY_OFFSET
            while offset + PRODOS_ENTRY_SIZE <= BLOCK_SIZE:
                entry = self.parse_entry(data[offset:offset + PRODOS_ENTRY_SIZE])
                if entry is not None:
                    if include_unknown or not isinstance(entry, UnknownEntry):
                        entries.append(entry)
                offset += PRODOS_ENTRY_SIZE

            block = next_block

        return entries

    def parse_entry(self, entry):
        """
        Decode one directory slot.

        Returns:
            ProDOSEntry: The decoded entry, or None for an unused slot.
        """
        storage_type = entry[0] >> 4
        name_length = entry[0] & 0x0F
        if name_length == 0:
            return None

        name = "".join(" " if b == 0 else chr(b) for b in entry[0x01:0x01 + name_length]).strip()
        if not name:
            return None

        entry_class = ENTRY_CLASSES.get(storage_type)
        if entry_class is None:
            self.logger.warning("Unknown storage type $%X for entry %r", storage_type, name)
            entry_class = UnknownEntry
        return entry_class(self, entry, storage_type, name)

    def read_index_block(self, block):
        """
        Read an index block: 256 pointers, low bytes in $000-$0FF, high bytes in $100-$1FF.
        """
        data = self.read_block(block)
        if data is None:
            return None
        return [data[i] | (data[i + INDEX_POINTERS] << 8) for i in range(INDEX_POINTERS)]

    def _data_blocks(self, entry):
        """Yield the data block numbers of a file in order; 0 is a sparse block."""
        if entry.storage_type == SEEDLING:
            yield entry.key_pointer
            return

        index = self.read_index_block(entry.key_pointer)
        if index is None:
            return

        if entry.storage_type == SAPLING:
            yield from index
            return

        # Tree: the key block is a master index of sapling index blocks
        for pointer in index[:MASTER_INDEX_POINTERS]:
            if pointer == 0:
                yield from [0] * INDEX_POINTERS
                continue
            sub_index = self.read_index_block(pointer)
            if sub_index is None:
                self.logger.warning("Unreadable index block %d in %s", pointer, entry.name)
                return
            yield from sub_index

    def read_file_content(self, entry):
        """
        Reconstruct the bytes of an entry.

        Returns:
            bytes: File data trimmed to its EOF, directory blocks for a
            subdirectory, b"" for entries without data, or None if the key
            block can't be read.
        """
        if isinstance(entry, SubdirectoryEntry):
            return self._read_directory_blocks(entry)
        if not isinstance(entry, FileEntry):
            return b""
        if entry.key_pointer == 0 or self.read_block(entry.key_pointer) is None:
            return None

        content = bytearray()
        remaining = entry.eof
        for pointer in self._data_blocks(entry):
            if remaining <= 0:
                break
            if pointer == 0:
                data = bytes(BLOCK_SIZE)
            else:
                data = self.read_block(pointer)
                if data is None:
                    self.logger.warning("Unreadable data block %d in %s", pointer, entry.name)
                    break
            content.extend(data[:remaining])
            remaining -= BLOCK_SIZE

        return bytes(content)

    def _read_directory_blocks(self, entry):
        block = entry.key_pointer
        if self.read_block(block) is None:
            return None

        content = bytearray()
        visited = set()
        while block and block not in visited:
            visited.add(block)
            data = self.read_block(block)
            if data is None:
                break
            content.extend(data)
            block = le16(data, 2)
        return bytes(content)

    def walk(self, block=VOLUME_DIRECTORY_BLOCK, path="", _visited=None):
        """
        Yield (path, entry) for every live file and subdirectory in the volume tree.

        Paths are '/'-joined entry names relative to the volume root.
        """
        visited = _visited if _visited is not None else set()
        if block in visited:
            self.logger.warning("Subdirectory at block %d already visited, skipping", block)
            return
        visited.add(block)

        for entry in self.read_directory(block):
            if isinstance(entry, (DirectoryHeader, DeletedEntry)):
                continue
            entry_path = f"{path}/{entry.name}"
            yield entry_path, entry
            if entry.is_directory and entry.key_pointer:
                yield from self.walk(entry.key_pointer, entry_path, visited)


def detect_format(filename, data=None, fmt='auto', logger=None):
    """
    Open a disk image and return the matching filesystem.

    .po, .hdv and .2mg files are treated as ProDOS, anything else as DOS 3.3.

    Args:
        filename (str): Image name; read from disk when data is None.
        data (bytes): Image contents already in memory.
        fmt (str): 'auto', 'dos33' or 'prodos'.
        logger (logging.Logger): Passed to the filesystem.
    """
    if data is None:
        with open(filename, 'rb') as f:
            data = f.read()

    if fmt == 'auto':
        fmt = 'prodos' if is_prodos_filename(filename) else 'dos33'

    if fmt == 'prodos':
        return ProDOSFileSystem(ProDOSImage(data, filename), logger=logger)
    return DOS33FileSystem(DOS33Image(data, filename), logger=logger)


def safe_filename(name):
    """Host filename for an Apple II name ('/' isn't allowed on the host)."""
    return name.replace('/', '_') or '_'


def host_paths(fs):
    """
    Yield (path, entry) for every file and directory on a filesystem.

    Paths are '/'-rooted and safe for the host. DOS 3.3 allows duplicate
    names in the catalog, so repeated paths get a ';2', ';3', ... suffix.
    Entries inside a renamed ProDOS subdirectory follow the new name.
    """
    if isinstance(fs, ProDOSFileSystem):
        entries = fs.walk()
    else:
        entries = (("/" + safe_filename(f.name), f) for f in fs.list_files())

    seen = set()
    renamed = {}  # original directory path -> unique path
    for original, entry in entries:
        parent, _, name = original.rpartition('/')
        path = f"{renamed[parent]}/{name}" if parent in renamed else original

        unique = path
        n = 2
        while unique in seen:
            unique = f"{path};{n}"
            n += 1
        seen.add(unique)

        if entry.is_directory and unique != original:
            renamed[original] = unique
        yield unique, entry


def main(argv=None):
    # Allow overriding program name via environment variable (for wrapper scripts)
    prog_name = os.environ.get("A2_PROG_NAME")

    parser = argparse.ArgumentParser(
        prog=prog_name,
        description="List, read and extract files from Apple II DOS 3.3 and ProDOS disk images."
    )
    parser.add_argument("disk_image", help="Disk image file (.dsk, .do, .po, .hdv, .2mg)")
    parser.add_argument("command", nargs="?", choices=["read", "extract"], help="Optional action")
    parser.add_argument("target", nargs="?", help="File name for 'read', output directory for 'extract'")
    parser.add_argument("--format", dest="fmt", choices=["auto", "dos33", "prodos"], default="auto",
                        help="Override the extension-based format detection")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    level = logging.DEBUG if args.debug else logging.WARNING
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    if args.command and not args.target:
        parser.error(f"'{args.command}' needs a target")

    if not os.path.exists(args.disk_image):
        print(f"Error: File '{args.disk_image}' not found.")
        sys.exit(1)

    try:
        fs = detect_format(args.disk_image, fmt=args.fmt)
    except OSError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Detected Format: {fs.disk.get_geometry()}")
    files = fs.list_files()

    print("\nFiles found:")
    for f in files:
        print(f" - {f.name:<30}  Size: {f.size:>8} bytes  Type: {f.type:<10}  Flags: {f.flags}")

    if args.command == "read":
        print(f"\nReading file: {args.target}")
        match = next((f for f in files if f.name == args.target), None)
        content = match.content if match is not None else None
        if content:
            print(f"Read {len(content)} bytes.")
            print("Content (first 500 bytes):")
            # Apple II text has the high bit set
            print(bytes(b & 0x7F for b in content[:500]).decode('ascii', errors='replace'))
        else:
            print("File not found or empty.")

    elif args.command == "extract":
        dest_dir = args.target
        os.makedirs(dest_dir, exist_ok=True)

        print(f"\nExtracting all files to {dest_dir}...")
        for path, f in host_paths(fs):
            rel_path = path.lstrip('/')
            out_path = os.path.join(dest_dir, *rel_path.split('/'))
            if f.is_directory:
                print(f"Creating directory {rel_path}")
                os.makedirs(out_path, exist_ok=True)
                continue

            content = f.content
            if not content:
                print(f"Skipping empty or unreadable file: {rel_path}")
                continue
            print(f"Extracting {f.name} -> {rel_path}")
            os.makedirs(os.path.dirname(out_path), exist_ok=True)
            with open(out_path, 'wb') as out_f:
                out_f.write(content)


if __name__ == "__main__":
    main()
