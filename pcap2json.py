#!/usr/bin/env python

# Project     : diadump
# Copyright (C) 2017 Orange
# All rights reserved.
# This software is distributed under the terms and conditions of the 'BSD 3-Clause'
# license which can be found in the file 'LICENSE' in this package distribution.

import sys
import argparse
import logging
from collections import Counter

import Diameter as dm
from Dia import Directory, DictionaryError, DIA_PATH
from Pcap import CaptureLoader, CaptureError
from enrich import enrich_avps
from record import build_record, serialize

logger = logging.getLogger('pcap2json')

def decode_payload(payload, directory, decoders=None):
  '''decode payload as a single Diameter message, and return its record.
Raises Diameter.DecodeError when payload is not a Diameter message.'''
  m = dm.Msg.decode(payload, directory)
  avps = enrich_avps(directory, m.app_id, m.avps, decoders)
  return build_record(m, avps)

def dump_records(payloads, directory, out, indent=2, stats=None):
  '''write one serialized record per decoded payload.
Payloads which are not Diameter messages are skipped silently.'''
  if stats is None:
    stats = Counter()

  for payload in payloads:
    stats['payloads'] += 1

    try:
      r = decode_payload(payload, directory)
    except dm.DecodeError as e:
      stats['skipped'] += 1
      logger.debug('payload %d skipped: %r', stats['payloads'], e)
      continue

    try:
      s = serialize(r, indent)
    except (TypeError, ValueError) as e:
      stats['unserializable'] += 1
      logger.warning('payload %d: command %d, h2h 0x%08x: could not serialize record: %s',
        stats['payloads'], r['command_code'], r['hop_by_hop_id'], e)
      continue

    stats['records'] += 1
    out.write(s + '\n')

  return stats

def main(argv=None):
  parser = argparse.ArgumentParser(
    description='Decode Diameter messages found in a capture file, and dump them as JSON')
  parser.add_argument('pcap', help='pcap or pcapng capture file')
  parser.add_argument('--dict', action='append', default=[],
    help='Diameter dictionary (.dia) to load instead of default ones, may be repeated')
  parser.add_argument('--dia-path', action='append', default=[],
    help='Directory searched for dictionaries and inherited modules, may be repeated')
  parser.add_argument('--indent', type=int, default=2,
    help='Indentation of JSON records')
  parser.add_argument('--compact', action='store_true',
    help='Dump each JSON record on a single line')
  parser.add_argument('--stats', action='store_true',
    help='Report processing counters once capture is exhausted')
  parser.add_argument('-v', '--verbose', action='count', default=0,
    help='Increase logging verbosity')

  args = parser.parse_args(argv)

  level = logging.WARNING
  if args.verbose == 1:
    level = logging.INFO
  elif args.verbose > 1:
    level = logging.DEBUG
  if args.stats:
    level = min(level, logging.INFO)
  logging.basicConfig(level=level, stream=sys.stderr,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s')

  dia_path = args.dia_path + DIA_PATH

  try:
    directory = Directory(*args.dict, dia_path=dia_path)
  except (DictionaryError, OSError, ValueError) as e:
    logger.error('could not load dictionaries: %s%r', e.__class__.__name__, e.args)
    sys.exit(1)

  indent = args.indent
  if args.compact:
    indent = None

  try:
    capture = CaptureLoader(args.pcap)
  except CaptureError as e:
    logger.error('could not open capture %s: %s', *e.args)
    sys.exit(1)

  with capture:
    stats = dump_records(capture.payloads(), directory, sys.stdout, indent)

  if args.stats:
    logger.info('%d payloads, %d records, %d skipped, %d not serializable',
      stats['payloads'], stats['records'], stats['skipped'], stats['unserializable'])

  return 0

if __name__ == '__main__':
  sys.exit(main())
