#!/usr/bin/env python

# Project     : diadump
# Copyright (C) 2017 Orange
# All rights reserved.
# This software is distributed under the terms and conditions of the 'BSD 3-Clause'
# license which can be found in the file 'LICENSE' in this package distribution.

'''
Decoders for OctetString AVPs carrying a structure of their own.

DECODERS maps an AVP name to a function taking the raw bytes, and returning
either a namedtuple that replaces the generic value, or None when the bytes
cannot be decoded that way.
'''

from collections import namedtuple

Plmn = namedtuple('Plmn', 'mcc mnc hex')

DECODERS = {}

FILLER = 0xf

def register(name):
  def wrapper(f):
    DECODERS[name] = f
    return f
  return wrapper

@register('Visited-PLMN-Id')
def decode_plmn(b):
  '''PLMN identity, as BCD digits (3GPP TS 23.003, 29.272).

    MCC digit 2 | MCC digit 1
    MNC digit 3 | MCC digit 3
    MNC digit 2 | MNC digit 1

MNC digit 3 is set to filler when MNC is two digits long. Any other nibble,
filler included, renders as its decimal value: 21 43 f5 gives MNC 5154.'''
  if len(b) < 3:
    return None

  mcc = [b[0] & 0x0f, b[0] >> 4, b[1] & 0x0f]
  mnc = [b[2] & 0x0f, b[2] >> 4]
  if b[1] >> 4 != FILLER:
    mnc.append(b[1] >> 4)

  return Plmn(mcc=''.join('%d' % d for d in mcc),
    mnc=''.join('%d' % d for d in mnc),
    hex=b.hex())
