# Project     : diadump
# Copyright (C) 2017 Orange
# All rights reserved.
# This software is distributed under the terms and conditions of the 'BSD 3-Clause'
# license which can be found in the file 'LICENSE' in this package distribution.

from collections import namedtuple
from struct import pack

import Diameter as dm
from enrich import MAX_GROUPED_DEPTH, enrich_avps, avp_name, render, to_value
from semantic import Plmn

from conftest import avp, msg, u32

S6A = 16777251

def decoded_avps(directory, app_id, avps):
  return dm.Msg.decode(msg(316, avps, app_id=app_id), directory).avps

def test_primitive_values(directory):
  avps = decoded_avps(directory, S6A, [
    avp(263, b'session;1'),
    avp(268, u32(2001)),
    avp(701, b'\x33\x60', vendor=10415, flags=0xc0),
    avp(257, b'\x00\x01\x0a\x00\x00\x01'),
  ])
  infos = enrich_avps(directory, S6A, avps)

  assert [(i.code, i.vendor_id, i.name) for i in infos] == [
    (263, 0, 'Session-Id'), (268, 0, 'Result-Code'),
    (701, 10415, 'MSISDN'), (257, 0, 'Host-IP-Address')]
  assert [i.value for i in infos] == ['session;1', 2001, b'\x33\x60', '10.0.0.1']
  assert all(i.avps is None and i.decoded is None for i in infos)

def test_rendered_values(directory):
  avps = decoded_avps(directory, 0, [
    avp(273, pack('!i', 1)),
    avp(55, u32(0)),
    avp(292, b'aaa://peer.example.com'),
    avp(9999, b'\x01\x02'),
  ])
  infos = enrich_avps(directory, 0, avps)

  assert [i.value for i in infos] == [
    'Enumerated{1}',
    'Time{1900-01-01T00:00:00+00:00}',
    'DiameterURI{aaa://peer.example.com}',
    'Unknown{0x0102}']
  assert infos[3].name == ''

def test_grouped(directory):
  vsai = avp(260, avp(266, u32(10415)) + avp(258, u32(16777251)))
  avps = decoded_avps(directory, S6A, [avp(263, b's'), vsai, avp(268, u32(2001))])
  infos = enrich_avps(directory, S6A, avps)

  assert [i.code for i in infos] == [263, 260, 268]
  g = infos[1]
  assert g.value is None
  assert [(c.name, c.value) for c in g.avps] == [('Vendor-Id', 10415), ('Auth-Application-Id', 16777251)]

def test_nested_grouped(directory):
  arp = avp(1034, avp(1046, u32(9), vendor=10415, flags=0xc0), vendor=10415, flags=0xc0)
  apn = avp(1430, avp(1423, u32(1), vendor=10415, flags=0xc0) + arp, vendor=10415, flags=0xc0)
  infos = enrich_avps(directory, S6A, decoded_avps(directory, S6A, [apn]))

  (c,) = infos
  assert c.name == 'APN-Configuration'
  assert [x.name for x in c.avps] == ['Context-Identifier', 'Allocation-Retention-Priority']
  assert c.avps[1].avps[0].value == 9

def test_grouped_depth_limit(directory):
  vsai = avp(260, avp(266, u32(10415)))
  avps = decoded_avps(directory, 0, [vsai])

  (info,) = enrich_avps(directory, 0, avps, depth=MAX_GROUPED_DEPTH)
  assert info.avps is None
  assert info.value == avp(266, u32(10415)).hex()

  (info,) = enrich_avps(directory, 0, avps, depth=MAX_GROUPED_DEPTH-1)
  assert info.avps[0].value == 10415

def test_grouped_decode_failure(directory):
  avps = decoded_avps(directory, 0, [avp(260, b'\x00\x00\x01')])
  (info,) = enrich_avps(directory, 0, avps)
  assert info.avps is None
  assert info.value == '000001'

def test_plmn_decoder(directory):
  avps = decoded_avps(directory, S6A, [avp(1407, bytes.fromhex('00f110'), vendor=10415, flags=0xc0)])
  (info,) = enrich_avps(directory, S6A, avps)
  assert info.name == 'Visited-PLMN-Id'
  assert info.value is None
  assert info.decoded == Plmn(mcc='001', mnc='01', hex='00f110')

def test_plmn_decoder_declines(directory):
  avps = decoded_avps(directory, S6A, [avp(1407, b'\x00', vendor=10415, flags=0xc0)])
  (info,) = enrich_avps(directory, S6A, avps)
  assert info.decoded is None
  assert info.value == b'\x00'

def test_custom_decoders(directory):
  Digits = namedtuple('Digits', 'digits')
  decoders = {'MSISDN': lambda b: Digits(b.hex())}
  avps = decoded_avps(directory, S6A, [
    avp(701, b'\x33\x60', vendor=10415, flags=0xc0),
    avp(1407, bytes.fromhex('00f110'), vendor=10415, flags=0xc0),
  ])
  infos = enrich_avps(directory, S6A, avps, decoders)
  assert infos[0].decoded == Digits('3360')
  # default decoders are not used when a mapping is given
  assert infos[1].decoded is None
  assert infos[1].value == bytes.fromhex('00f110')

def test_decoder_needs_octetstring(directory):
  decoders = {'Session-Id': lambda b: Plmn('0', '0', '')}
  avps = decoded_avps(directory, 0, [avp(263, b's')])
  (info,) = enrich_avps(directory, 0, avps, decoders)
  assert info.decoded is None
  assert info.value == 's'

def test_avp_name(directory):
  assert avp_name(directory, S6A, 1407, 10415) == 'Visited-PLMN-Id'
  assert avp_name(directory, S6A, 1407, 0) == ''

def test_render():
  assert render('Unknown', b'') == 'Unknown{0x}'
  assert render('IPFilterRule', 'permit in ip from any to any') == \
    'IPFilterRule{permit in ip from any to any}'

def test_to_value():
  assert to_value(dm.Value('Float32', 1.5)) == 1.5
  assert to_value(dm.Value('Grouped', b'\xab\xcd')) == 'abcd'
  assert to_value(dm.Value('OctetString', b'\xab')) == b'\xab'
