# Project     : diadump
# Copyright (C) 2017 Orange
# All rights reserved.
# This software is distributed under the terms and conditions of the 'BSD 3-Clause'
# license which can be found in the file 'LICENSE' in this package distribution.

from struct import pack

import pytest

from Dia import Directory

@pytest.fixture(scope='session')
def directory():
  return Directory()

def avp(code, data, vendor=0, flags=0x40):
  '''wire form of a single AVP, padded.'''
  hdr_len = 8
  if vendor:
    flags |= 0x80
    hdr_len += 4
  length = hdr_len + len(data)

  b = pack('!LB', code, flags) + pack('!L', length)[1:]
  if vendor:
    b += pack('!L', vendor)
  b += data
  if length % 4:
    b += b'\x00' * (4 - length % 4)
  return b

def msg(code, avps, flags=0x80, app_id=0, h2h_id=0x11223344, e2e_id=0x55667788, version=1):
  '''wire form of a message carrying already encoded AVPs.'''
  body = b''.join(avps)
  length = 20 + len(body)
  return pack('!B', version) + pack('!L', length)[1:] + pack('!B', flags) + \
    pack('!L', code)[1:] + pack('!LLL', app_id, h2h_id, e2e_id) + body

def u32(n):
  return pack('!L', n)
