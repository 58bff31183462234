#!/usr/bin/env python

# Project     : diadump
# Copyright (C) 2017 Orange
# All rights reserved.
# This software is distributed under the terms and conditions of the 'BSD 3-Clause'
# license which can be found in the file 'LICENSE' in this package distribution.

import logging
from collections import namedtuple

import Diameter as dm
from semantic import DECODERS

logger = logging.getLogger(__name__)

# grouped AVPs nest a few levels at most in practice
MAX_GROUPED_DEPTH = 16

'''AVP ready for presentation. Exactly one of value, avps and decoded is set:
_ value: canonical form of a primitive AVP
_ avps: enriched children of a grouped AVP
_ decoded: output of a semantic decoder'''
AvpInfo = namedtuple('AvpInfo', 'code vendor_id name value avps decoded')

def avp_name(directory, app_id, code, vendor_id):
  '''name of AVP, or empty string when no dictionary knows about it.'''
  model = directory.lookup_avp(app_id, code, vendor_id)
  if model is None:
    return ''
  return model.name

def render(kind, data):
  if kind == 'Time':
    text = data.isoformat()
  elif kind == 'Unknown':
    text = '0x%s' % data.hex()
  else:
    text = '%s' % (data,)
  return '%s{%s}' % (kind, text)

CANONICAL = {
  'UTF8String': lambda x: x,
  'DiameterIdentity': lambda x: x,
  'OctetString': bytes,
  'Address': str,
  'Integer32': int,
  'Integer64': int,
  'Unsigned32': int,
  'Unsigned64': int,
  'Float32': float,
  'Float64': float,
  'Grouped': lambda x: x.hex(),
}

def to_value(value):
  '''canonical form of a typed AVP value.'''
  (kind, data) = value
  if kind in CANONICAL:
    return CANONICAL[kind](data)
  return render(kind, data)

def enrich_avp(directory, app_id, a, decoders, depth):
  name = avp_name(directory, app_id, a.code, a.vendor)
  info = AvpInfo(code=a.code, vendor_id=a.vendor, name=name,
    value=None, avps=None, decoded=None)

  if a.value.kind == 'Grouped':
    if depth >= MAX_GROUPED_DEPTH:
      logger.debug('grouped AVP %d nested too deep, kept raw', a.code)
    else:
      try:
        children = dm.decode_grouped(a.value.data, app_id, directory)
      except dm.DecodeError as e:
        logger.debug('grouped AVP %d (%s) could not be decoded: %r', a.code, name, e)
      else:
        return info._replace(avps=enrich_avps(directory, app_id, children, decoders, depth+1))
  elif a.value.kind == 'OctetString' and name in decoders:
    decoded = decoders[name](a.value.data)
    if decoded is not None:
      return info._replace(decoded=decoded)

  return info._replace(value=to_value(a.value))

def enrich_avps(directory, app_id, avps, decoders=None, depth=0):
  '''enrich AVPs, keeping wire order.'''
  if decoders is None:
    decoders = DECODERS
  return [enrich_avp(directory, app_id, a, decoders, depth) for a in avps]
