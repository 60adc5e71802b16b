import pytest

from a2_driver import DOS33_IMAGE_SIZE, BLOCK_SIZE


# DOS 3.3 image builders

def sector_offset(track, sector):
    return (track * 16 + sector) * 256


def put_sector(image, track, sector, data):
    offset = sector_offset(track, sector)
    image[offset:offset + len(data)] = data


def dos_name(name, high_bit=True):
    raw = name.encode('ascii')
    if high_bit:
        raw = bytes(c | 0x80 for c in raw)
    return raw.ljust(30, b'\xa0')


def catalog_entry(ts_track, ts_sector, file_type, name, sector_count, high_bit=True):
    entry = bytearray(0x23)
    entry[0] = ts_track
    entry[1] = ts_sector
    entry[2] = file_type
    entry[3:0x21] = dos_name(name, high_bit)
    entry[0x21:0x23] = sector_count.to_bytes(2, 'little')
    return entry


def write_vtoc(image, catalog=(17, 15), bitmap=None):
    vtoc = bytearray(256)
    vtoc[1], vtoc[2] = catalog
    vtoc[3] = 3
    vtoc[6] = 254
    vtoc[0x31:0x33] = (122).to_bytes(2, 'little')
    vtoc[0x34] = 35
    vtoc[0x35] = 16
    vtoc[0x36:0x38] = (256).to_bytes(2, 'little')
    for i, byte in enumerate(bitmap or []):
        vtoc[0x38 + i] = byte
    put_sector(image, 17, 0, vtoc)


def write_catalog_sector(image, track, sector, entries, next_ts=(0, 0)):
    data = bytearray(256)
    data[1], data[2] = next_ts
    for i, entry in enumerate(entries):
        offset = 0x0B + i * 0x23
        data[offset:offset + 0x23] = entry
    put_sector(image, track, sector, data)


def write_ts_list(image, track, sector, pairs, next_ts=(0, 0)):
    data = bytearray(256)
    data[1], data[2] = next_ts
    for i, (t, s) in enumerate(pairs):
        data[0x0C + i * 2] = t
        data[0x0D + i * 2] = s
    put_sector(image, track, sector, data)


def data_sector(i):
    """256 bytes that differ for every i."""
    return bytes((i + k) % 256 for k in range(256))


def data_location(i):
    # Data sectors live on tracks 18 and up
    return 18 + i // 16, i % 16


# ProDOS image builders

def put_block(image, block, data):
    offset = block * BLOCK_SIZE
    image[offset:offset + len(data)] = data


def prodos_entry(storage_type, name, file_type=0x04, key_pointer=0, blocks_used=0, eof=0,
                 access=0xE3, aux_type=0, header_pointer=2, created=b'\x21\x5a\x0c\x1e'):
    entry = bytearray(0x27)
    entry[0] = (storage_type << 4) | len(name)
    entry[1:1 + len(name)] = name.encode('ascii')
    entry[0x10] = file_type
    entry[0x11:0x13] = key_pointer.to_bytes(2, 'little')
    entry[0x13:0x15] = blocks_used.to_bytes(2, 'little')
    entry[0x15:0x18] = eof.to_bytes(3, 'little')
    entry[0x18:0x1c] = created
    entry[0x1e] = access
    entry[0x1f:0x21] = aux_type.to_bytes(2, 'little')
    entry[0x21:0x25] = created
    entry[0x25:0x27] = header_pointer.to_bytes(2, 'little')
    return entry


def volume_header(name, total_blocks, active_entries=0, bitmap_pointer=6):
    entry = bytearray(0x27)
    entry[0] = 0xF0 | len(name)
    entry[1:1 + len(name)] = name.encode('ascii')
    entry[0x16:0x18] = (0x8000).to_bytes(2, 'little')
    entry[0x1e] = 0xC3
    entry[0x1f] = 0x27
    entry[0x20] = 0x0D
    entry[0x21:0x23] = active_entries.to_bytes(2, 'little')
    entry[0x23:0x25] = bitmap_pointer.to_bytes(2, 'little')
    entry[0x25:0x27] = total_blocks.to_bytes(2, 'little')
    return entry


def subdirectory_header(name, parent_pointer=2, parent_entry_number=2, active_entries=1):
    entry = bytearray(0x27)
    entry[0] = 0xE0 | len(name)
    entry[1:1 + len(name)] = name.encode('ascii')
    entry[0x10] = 0x75
    entry[0x1e] = 0xC3
    entry[0x1f] = 0x27
    entry[0x20] = 0x0D
    entry[0x21:0x23] = active_entries.to_bytes(2, 'little')
    entry[0x23:0x25] = parent_pointer.to_bytes(2, 'little')
    entry[0x25] = parent_entry_number
    entry[0x26] = 0x27
    return entry


def write_directory_block(image, block, entries, prev_block=0, next_block=0):
    data = bytearray(BLOCK_SIZE)
    data[0:2] = prev_block.to_bytes(2, 'little')
    data[2:4] = next_block.to_bytes(2, 'little')
    for i, entry in enumerate(entries):
        offset = 4 + i * 0x27
        data[offset:offset + 0x27] = entry
    put_block(image, block, data)


def block_pattern(seed):
    return bytes((seed * 7 + k) % 256 for k in range(BLOCK_SIZE))


def index_block(pointers):
    data = bytearray(BLOCK_SIZE)
    for i, pointer in enumerate(pointers):
        data[i] = pointer & 0xFF
        data[i + 256] = pointer >> 8
    return data


@pytest.fixture
def dos_image():
    return bytearray(DOS33_IMAGE_SIZE)


@pytest.fixture
def prodos_image():
    # 280 blocks = 140K floppy
    return bytearray(280 * BLOCK_SIZE)
