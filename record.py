#!/usr/bin/env python

# Project     : diadump
# Copyright (C) 2017 Orange
# All rights reserved.
# This software is distributed under the terms and conditions of the 'BSD 3-Clause'
# license which can be found in the file 'LICENSE' in this package distribution.

import json
from base64 import b64encode

COMMAND_CODES = {
  257: 'Capabilities-Exchange (CER/CEA)',
  280: 'Device-Watchdog (DWR/DWA)',
  282: 'Disconnect-Peer (DPR/DPA)',
  316: 'Update-Location (ULR/ULA)',
  317: 'Cancel-Location (CLR/CLA)',
  318: 'Authentication-Information (AIR/AIA)',
  319: 'Insert-Subscriber-Data (IDR/IDA)',
  320: 'Delete-Subscriber-Data (DSR/DSA)',
  321: 'Purge-UE (PUR/PUA)',
  322: 'Reset (RSR/RSA)',
  323: 'Notify (NOR/NOA)',
}

APPLICATIONS = {
  0: 'Diameter Base',
  16777251: 'S6a/S6d',
}

# RFC 6733 3.: Request, Proxiable, Error, potentially reTransmitted
COMMAND_FLAGS = [(0x80, 'R'), (0x40, 'P'), (0x20, 'E'), (0x10, 'T')]

def command_code_name(code):
  return COMMAND_CODES.get(code, '')

def application_name(app_id):
  return APPLICATIONS.get(app_id, '')

def command_flags_name(flags):
  return '|'.join(letter for (bit, letter) in COMMAND_FLAGS if flags & bit)

def avp_data(info):
  if info.avps is not None:
    return {'avps': [avp_record(a) for a in info.avps]}
  if info.decoded is not None:
    return dict(info.decoded._asdict())
  return info.value

def avp_record(info):
  r = {'code': info.code}
  if info.vendor_id:
    r['vendor_id'] = info.vendor_id
  if info.name:
    r['name'] = info.name
  r['data'] = avp_data(info)
  return r

def build_record(msg, avps):
  '''assemble the presentation of a decoded message and its enriched AVPs.
Optional names are left out when empty.'''
  r = {'command_code': msg.code}
  name = command_code_name(msg.code)
  if name:
    r['command_code_name'] = name

  r['command_flags'] = msg.flags
  name = command_flags_name(msg.flags)
  if name:
    r['command_flags_name'] = name

  r['application_id'] = msg.app_id
  name = application_name(msg.app_id)
  if name:
    r['application_name'] = name

  r['hop_by_hop_id'] = msg.h2h_id
  r['end_to_end_id'] = msg.e2e_id
  r['avps'] = [avp_record(a) for a in avps]

  return r

def json_default(o):
  # OctetString values, encoded as base64 like most JSON encoders do for binary
  if isinstance(o, (bytes, bytearray)):
    return b64encode(o).decode('ascii')
  raise TypeError('%r is not JSON serializable' % (o,))

def serialize(r, indent=2):
  '''raises TypeError or ValueError when record cannot be represented,
e.g. for a NaN float.'''
  return json.dumps(r, indent=indent, default=json_default, allow_nan=False)
