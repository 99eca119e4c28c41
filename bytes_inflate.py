import argparse
import logging
import sys
import threading
from collections import Counter, namedtuple

logger = logging.getLogger(__name__)

MAX_BITS = 15
MAX_LITERAL_LENGTH_CODES = 286
MAX_DIST_CODES = 30

HuffmanTable = namedtuple('HuffmanTable', (
    'count',
    'symbol',
))

length_extra_bits_diffs = (
    (0, 3), (0, 4), (0, 5), (0, 6), (0, 7), (0, 8), (0, 9), (0, 10),
    (1, 11), (1, 13), (1, 15), (1, 17),
    (2, 19), (2, 23), (2, 27), (2, 31),
    (3, 35), (3, 43), (3, 51), (3, 59),
    (4, 67), (4, 83), (4, 99), (4, 115),
    (5, 131), (5, 163), (5, 195), (5, 227),
    (0, 258),
)
dist_extra_bits_diffs = (
    (0, 1), (0, 2), (0, 3), (0, 4),
    (1, 5), (1, 7), (2, 9), (2, 13),
    (3, 17), (3, 25), (4, 33), (4, 49),
    (5, 65), (5, 97), (6, 129), (6, 193),
    (7, 257), (7, 385), (8, 513), (8, 769),
    (9, 1025), (9, 1537), (10, 2049), (10, 3073),
    (11, 4097), (11, 6145), (12, 8193), (12, 12289),
    (13, 16385), (13, 24577),
)
code_lengths_alphabet = (16, 17, 18, 0, 8, 7, 9, 6, 10, 5, 11, 4, 12, 3, 13, 2, 14, 1, 15)

_static_tables = None
_static_tables_lock = threading.Lock()


def inflate(data):
    return inflate_with_unconsumed(data)[0]


def inflate_with_unconsumed(data):
    read_bit, read_bits, read_bytes, align, at_end, num_bytes_remaining, position, read_past_end = get_readers(data)
    decode = get_decoder(read_bit, position)

    def check_not_past_end(what):
        if read_past_end():
            raise UnexpectedEndOfStream(what + ' runs past the end of the data', position())

    def get_dynamic_tables():
        num_literal_length_codes = read_bits(5) + 257
        num_dist_codes = read_bits(5) + 1
        num_length_codes = read_bits(4) + 4
        logger.debug('Dynamic tables: HLIT %s, HDIST %s, HCLEN %s',
                     num_literal_length_codes, num_dist_codes, num_length_codes)
        check_not_past_end('Dynamic table header')

        if num_literal_length_codes > MAX_LITERAL_LENGTH_CODES or num_dist_codes > MAX_DIST_CODES:
            raise InvalidTableSize('Too many length or distance codes', num_literal_length_codes, num_dist_codes, position())

        code_length_code_lengths = [0] * 19
        for i in range(0, num_length_codes):
            code_length_code_lengths[code_lengths_alphabet[i]] = read_bits(3)
        check_not_past_end('Code length code lengths')
        code_length_codes = get_huffman_table(code_length_code_lengths)

        num_codes = num_literal_length_codes + num_dist_codes
        code_lengths = [0] * num_codes

        i = 0
        while i < num_codes:
            code = decode(code_length_codes)
            if code < 16:
                code_lengths[i] = code
                i += 1
                continue

            if code == 16:
                if i == 0:
                    raise NoPrecedingLength('No previous code length to repeat', position())
                length = code_lengths[i - 1]
                repeat = 3 + read_bits(2)
            elif code == 17:
                length = 0
                repeat = 3 + read_bits(3)
            else:
                length = 0
                repeat = 11 + read_bits(7)

            if i + repeat > num_codes:
                raise TooManyLengths('Code lengths overflow declared total', i + repeat, num_codes, position())
            code_lengths[i:i + repeat] = (length,) * repeat
            i += repeat

        check_not_past_end('Dynamic tables')

        if code_lengths[256] == 0:
            raise MissingEndOfBlockSymbol('No code for the end of block symbol', position())

        return \
            get_huffman_table(code_lengths[:num_literal_length_codes]), \
            get_huffman_table(code_lengths[num_literal_length_codes:])

    def copy_stored():
        align()
        if num_bytes_remaining() < 4:
            raise UnexpectedEndOfStream('Stored block length missing', position())

        b_len = int.from_bytes(read_bytes(2), byteorder='little')
        b_nlen = int.from_bytes(read_bytes(2), byteorder='little')
        if b_len ^ b_nlen != 0xFFFF:
            raise LengthMismatch('Stored block length does not match its complement', b_len, b_nlen, position())
        if num_bytes_remaining() < b_len:
            raise UnexpectedEndOfStream('Stored block truncated', b_len, num_bytes_remaining(), position())

        logger.debug('Stored block of %s bytes', b_len)
        out.extend(read_bytes(b_len))

    def decompress(literal_stop_or_length_codes, backwards_dist_codes):
        while not at_end():
            literal_stop_or_length_code = decode(literal_stop_or_length_codes)

            # Only an end of block code that starts inside the data may be completed with zero bits
            if literal_stop_or_length_code == 256:
                return

            check_not_past_end('Literal/length code')

            if literal_stop_or_length_code < 256:
                out.append(literal_stop_or_length_code)
                continue

            if literal_stop_or_length_code > 285:
                raise InvalidSymbol('Invalid literal/length symbol', literal_stop_or_length_code, position())

            length_extra_bits, length_diff = length_extra_bits_diffs[literal_stop_or_length_code - 257]
            length = length_diff + read_bits(length_extra_bits)

            code = decode(backwards_dist_codes)
            if code > 29:
                raise InvalidSymbol('Invalid distance symbol', code, position())
            dist_extra_bits, dist_diff = dist_extra_bits_diffs[code]
            dist = dist_diff + read_bits(dist_extra_bits)
            check_not_past_end('Back-reference')

            if dist > _len(out):
                raise DistanceExceedsOutput('Searching backwards too far', dist, _len(out), position())

            start = _len(out) - dist
            if dist >= length:
                out.extend(out[start:start + length])
            else:
                # Overlapping: the last dist bytes repeat until length is reached
                parts = out[start:]
                num_repeats = length // dist
                extra = length - num_repeats * dist
                out.extend(parts * num_repeats + parts[:extra])

        raise UnexpectedEndOfStream('No end of block symbol', position())

    _len = len
    out = bytearray()
    b_final = 0

    while not b_final:
        if at_end():
            raise UnexpectedEndOfStream('No block header', position())

        b_final = read_bit()
        b_type = read_bits(2)
        check_not_past_end('Block header')
        logger.debug('Block header: final %s, type %s, at %s', b_final, b_type, position())

        if b_type == 0:
            copy_stored()
        elif b_type == 1:
            decompress(*get_static_tables())
        elif b_type == 2:
            decompress(*get_dynamic_tables())
        else:
            raise InvalidBlockType('Invalid block type', b_type, position())

    num_bytes_unconsumed = num_bytes_remaining()
    logger.debug('End of stream at %s, %s bytes unconsumed', position(), num_bytes_unconsumed)

    return bytes(out), num_bytes_unconsumed


# Low level bit/byte readers
def get_readers(data):
    chunk = memoryview(data)
    offset_byte = 0
    offset_bit = 0
    past_end = False

    def _read_bit():
        nonlocal offset_byte, offset_bit, past_end

        if offset_byte >= len(chunk):
            past_end = True
            return 0

        bit = (chunk[offset_byte] >> offset_bit) & 1
        offset_bit += 1
        if offset_bit == 8:
            offset_bit = 0
            offset_byte += 1

        return bit

    def _read_bits(num_bits):
        out = 0
        for out_offset_bit in range(0, num_bits):
            out |= _read_bit() << out_offset_bit
        return out

    def _read_bytes(num_bytes):
        nonlocal offset_byte
        offset_byte += num_bytes
        return bytes(chunk[offset_byte - num_bytes:offset_byte])

    def _align():
        nonlocal offset_byte, offset_bit

        if offset_bit:
            offset_byte += 1
        offset_bit = 0

    def _at_end():
        return offset_byte >= len(chunk)

    def _num_bytes_remaining():
        return max(len(chunk) - offset_byte - (1 if offset_bit else 0), 0)

    def _position():
        return offset_byte, offset_bit

    # True once any bit has been read from beyond the end of the data
    def _read_past_end():
        return past_end

    return _read_bit, _read_bits, _read_bytes, _align, _at_end, _num_bytes_remaining, _position, _read_past_end


def get_decoder(read_bit, position):

    def _decode(table):
        count = table.count
        symbol = table.symbol
        code = 0
        first = 0
        index = 0

        for length in range(1, MAX_BITS + 1):
            code |= read_bit()
            length_count = count[length]
            if code - length_count < first:
                return symbol[index + code - first]
            index += length_count
            first += length_count
            first <<= 1
            code <<= 1

        raise InvalidHuffmanCode('No symbol matches code', position())

    return _decode


def get_huffman_table(lengths):
    counts = Counter(lengths)
    count = tuple(counts[length] for length in range(0, MAX_BITS + 1))

    # Empty table, used when an alphabet has no symbols at all
    if count[0] == len(lengths):
        return HuffmanTable(count=count, symbol=())

    left = 1
    for length in range(1, MAX_BITS + 1):
        left = (left << 1) - count[length]
        if left < 0:
            raise OversubscribedCode('Code lengths oversubscribed', length, left)

    offsets = [0, 0]
    for length in range(1, MAX_BITS):
        offsets.append(offsets[length] + count[length])

    symbol = [0] * (len(lengths) - count[0])
    for value, length in enumerate(lengths):
        if length != 0:
            symbol[offsets[length]] = value
            offsets[length] += 1

    return HuffmanTable(count=count, symbol=tuple(symbol))


def get_static_tables():
    global _static_tables

    if _static_tables is None:
        with _static_tables_lock:
            if _static_tables is None:
                literal_stop_or_length_code_lengths = \
                    (8,) * 144 + \
                    (9,) * 112 + \
                    (7,) * 24 + \
                    (8,) * 8
                # Distance codes 30 and 31 are given codes so they decode, then are rejected
                dist_code_lengths = \
                    (5,) * 32
                _static_tables = \
                    get_huffman_table(literal_stop_or_length_code_lengths), \
                    get_huffman_table(dist_code_lengths)

    return _static_tables


class InflateError(ValueError):
    pass


class UnexpectedEndOfStream(InflateError):
    pass


class InvalidBlockType(InflateError):
    pass


class LengthMismatch(InflateError):
    pass


class OversubscribedCode(InflateError):
    pass


class InvalidHuffmanCode(InflateError):
    pass


class InvalidSymbol(InflateError):
    pass


class DistanceExceedsOutput(InflateError):
    pass


class NoPrecedingLength(InflateError):
    pass


class TooManyLengths(InflateError):
    pass


class MissingEndOfBlockSymbol(InflateError):
    pass


class InvalidTableSize(InflateError):
    pass


def main(argv=None):
    parser = argparse.ArgumentParser(description='Inflate raw DEFLATE streams')
    parser.add_argument('files', nargs='+', metavar='FILE', help='raw DEFLATE file, or - for stdin')
    parser.add_argument('-o', '--output', help='file to write to instead of stdout')
    parser.add_argument('--debug', action='store_true', help='log block level decoding details')
    args = parser.parse_args(argv)

    fmt = '%(asctime)s %(levelname)s: %(message)s'
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING, format=fmt)

    results = []
    for filename in args.files:
        if filename == '-':
            data = sys.stdin.buffer.read()
        else:
            with open(filename, 'rb') as f:
                data = f.read()

        try:
            uncompressed, num_bytes_unconsumed = inflate_with_unconsumed(data)
        except InflateError as e:
            sys.stderr.write(f'{filename}: {type(e).__name__}: {e}\n')
            return 1

        if num_bytes_unconsumed:
            logger.debug('%s: %s bytes after the final block', filename, num_bytes_unconsumed)
        results.append(uncompressed)

    if args.output is not None:
        with open(args.output, 'wb') as f:
            for uncompressed in results:
                f.write(uncompressed)
    elif sys.stdout.isatty():
        for uncompressed in results:
            print(repr(uncompressed))
    else:
        for uncompressed in results:
            sys.stdout.buffer.write(uncompressed)
        sys.stdout.buffer.flush()

    return 0


if __name__ == '__main__':
    sys.exit(main())
