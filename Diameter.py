#!/usr/bin/python

# Project     : diadump
# Copyright (C) 2017 Orange
# All rights reserved.
# This software is distributed under the terms and conditions of the 'BSD 3-Clause'
# license which can be found in the file 'LICENSE' in this package distribution.

from struct import unpack, calcsize
from io import BytesIO
from collections import namedtuple
from datetime import datetime, timedelta, timezone
import ipaddress

class DecodeError(Exception): pass
class IncompleteBuffer(DecodeError): pass
class InvalidVersion(DecodeError): pass
class MsgInvalidLength(DecodeError): pass
class AVPInvalidLength(DecodeError): pass
class InvalidAVPData(DecodeError): pass

HEADER_LENGTH = 20

# RFC 6733 Time is NTP format, seconds since 1900
NTP_EPOCH = datetime(1900, 1, 1, tzinfo=timezone.utc)

'''typed value of an AVP: kind is the dictionary datatype name,
or Unknown when the AVP is not described by any dictionary.'''
Value = namedtuple('Value', 'kind data')

FIXED_FORMATS = {
  'Integer32': '!i',
  'Integer64': '!q',
  'Unsigned32': '!L',
  'Unsigned64': '!Q',
  'Float32': '!f',
  'Float64': '!d',
  'Enumerated': '!i',
  'Time': '!L',
}

TEXT_DATATYPES = ['UTF8String', 'DiameterIdentity', 'DiameterURI',
  'IPFilterRule', 'QoSFilterRule']

def unpack24(x):
  xp = b'\x00' + x
  return unpack('!L', xp)[0]

assert(0 == unpack24(b'\x00\x00\x00'))

def read_exactly(f, n):
  b = f.read(n)
  if len(b) != n: raise IncompleteBuffer(n, len(b))
  return b

def decode_address(data):
  if len(data) < 2: raise InvalidAVPData('Address', len(data))
  (family,) = unpack('!H', data[:2])
  addr = data[2:]
  if family == 1:
    if len(addr) != 4: raise InvalidAVPData('Address', len(data))
    return ipaddress.IPv4Address(addr)
  elif family == 2:
    if len(addr) != 16: raise InvalidAVPData('Address', len(data))
    return ipaddress.IPv6Address(addr)
  # other IANA address families, e.g. E.164, are shown as hex
  return addr.hex()

def decode_value(datatype, data):
  if datatype in FIXED_FORMATS:
    fmt = FIXED_FORMATS[datatype]
    if len(data) != calcsize(fmt): raise InvalidAVPData(datatype, len(data))
    (v,) = unpack(fmt, data)
    if datatype == 'Time':
      v = NTP_EPOCH + timedelta(seconds=v)
    return Value(datatype, v)

  if datatype in TEXT_DATATYPES:
    return Value(datatype, data.decode('utf-8', 'replace'))

  if datatype == 'Address':
    return Value(datatype, decode_address(data))

  # OctetString, Grouped: raw bytes, grouped content decoded on demand
  return Value(datatype, data)

def type_avps(avps, app_id, directory):
  '''attach typed values to decoded AVPs, using dictionary definitions.'''
  for a in avps:
    model = None
    if directory is not None:
      model = directory.lookup_avp(app_id, a.code, a.vendor)

    if model is None:
      a.value = Value('Unknown', a.data)
    else:
      a.value = decode_value(model.datatype, a.data)

  return avps

def decode_avps(data):
  avps = []

  while len(data) > 0:
    a = Avp.decode(data)
    avps.append(a)

    assert(a.padded_length % 4 == 0)
    data = data[a.padded_length:]

  return avps

def decode_grouped(data, app_id, directory):
  '''decode content of a grouped AVP as a list of typed AVPs.'''
  return type_avps(decode_avps(data), app_id, directory)

class Msg:
  def __init__(self, **kwds):
    self.version = 1
    self.length = None
    self.flags = 0
    self.code = 0
    self.app_id = 0
    self.e2e_id = None
    self.h2h_id = None
    self.avps = []

    for k in kwds:
      setattr(self, k, kwds[k])

  def __repr__(self):
    elms = ['code=%d' % self.code, 'app_id=0x%x' % self.app_id, 'flags=0x%02x' % self.flags]
    elms.append('avps=%r' % self.avps)
    return 'Msg(%s)' % ', '.join(elms)

  @staticmethod
  def decode(s, directory=None):
    '''decode a single message from the start of s.
Trailing bytes past the message length are ignored.'''
    f = BytesIO(s)

    attrs = {}

    attrs['version'] = unpack('!B', read_exactly(f, 1))[0]
    if attrs['version'] != 1: raise InvalidVersion(attrs['version'])

    attrs['length'] = unpack24(read_exactly(f, 3))

    # R, P, E, T and reserved bits, kept raw
    attrs['flags'] = unpack('!B', read_exactly(f, 1))[0]

    attrs['code'] = unpack24(read_exactly(f, 3))

    attrs['app_id'] = unpack('!L', read_exactly(f, 4))[0]
    attrs['h2h_id'] = unpack('!L', read_exactly(f, 4))[0]
    attrs['e2e_id'] = unpack('!L', read_exactly(f, 4))[0]

    length = attrs['length']
    length -= HEADER_LENGTH
    if length < 0: raise MsgInvalidLength(attrs['length'])

    data = read_exactly(f, length)

    attrs['avps'] = type_avps(decode_avps(data), attrs['app_id'], directory)

    return Msg(**attrs)

class Avp:
  def __init__(self, **kwds):
    self.code = 0
    self.V = False
    self.M = False
    self.P = False
    self.reserved = None
    self.vendor = 0
    self.data = b''
    self.value = None
    self.length = None
    self.padded_length = None

    for k in kwds:
      setattr(self, k, kwds[k])

  def __repr__(self):
    elms = ['code=%d' % self.code]
    if self.vendor: elms.append('vendor=%d' % self.vendor)
    if self.value is not None:
      elms.append('%s=%r' % (self.value.kind, self.value.data))
    else:
      elms.append('data=%r' % self.data)
    return 'Avp(%s)' % ', '.join(elms)

  @staticmethod
  def decode(s):
    f = BytesIO(s)

    attrs = {}

    attrs['code'] = unpack('!L', read_exactly(f, 4))[0]

    flags = unpack('!B', read_exactly(f, 1))[0]
    if flags & 0x80: attrs['V'] = True
    if flags & 0x40: attrs['M'] = True
    if flags & 0x20: attrs['P'] = True
    reserved = flags & 0x1f
    if reserved: attrs['reserved'] = reserved

    length = unpack24(read_exactly(f, 3))
    attrs['length'] = length

    data_length = length
    data_length -= 8

    if flags & 0x80 != 0:
      attrs['vendor'] = unpack('!L', read_exactly(f, 4))[0]
      data_length -= 4

    if data_length < 0: raise AVPInvalidLength(attrs['code'], length)

    attrs['data'] = read_exactly(f, data_length)
    attrs['padded_length'] = length
    if length % 4 != 0:
      padding = 4 - (length % 4)
      read_exactly(f, padding)
      attrs['padded_length'] += padding

    return Avp(**attrs)
