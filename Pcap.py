#!/usr/bin/env python

# Project     : diadump
# Copyright (C) 2017 Orange
# All rights reserved.
# This software is distributed under the terms and conditions of the 'BSD 3-Clause'
# license which can be found in the file 'LICENSE' in this package distribution.

import logging
import ipaddress
from struct import unpack

import dpkt

logger = logging.getLogger(__name__)

class CaptureError(Exception): pass

PCAPNG_MAGIC = 0x0a0d0d0a

LINKTYPE_NULL = 0
LINKTYPE_ETHERNET = 1
LINKTYPE_RAW = 101
LINKTYPE_LINUX_SLL = 113
LINKTYPE_IPV4 = 228
LINKTYPE_IPV6 = 229

SUPPORTED_LINKTYPES = [LINKTYPE_NULL, LINKTYPE_ETHERNET, LINKTYPE_RAW,
  LINKTYPE_LINUX_SLL, LINKTYPE_IPV4, LINKTYPE_IPV6]

# TSN, stream identifier, stream sequence number, payload protocol identifier
SCTP_DATA_HDR_LEN = 12

TRANSPORTS = {6: 'tcp', 17: 'udp', 132: 'sctp'}

class Pdu(object):
  '''defines a Protocol Data Unit, as carried by a single frame.
content holds the transport payload: TCP segment or UDP datagram payload,
or user data of a single SCTP DATA chunk.'''
  def __init__(self, frm_number, ipproto, ipsrc, sport, ipdst, dport, content):
    self.frm_number = frm_number
    self.proto = TRANSPORTS[ipproto]
    self.ipsrc = ipsrc
    self.sport = sport
    self.ipdst = ipdst
    self.dport = dport
    self.content = content

    self.source = '%s:%d' % (self.ipsrc, self.sport)
    self.dest = '%s:%d' % (self.ipdst, self.dport)

  def __repr__(self):
    return '<Pdu frame %d %s %s -> %s, %d bytes>' % (self.frm_number, self.proto,
      self.source, self.dest, len(self.content))

def link_decode(linktype, buf):
  '''return network layer of frame.'''
  if linktype == LINKTYPE_ETHERNET:
    return dpkt.ethernet.Ethernet(buf).data
  elif linktype == LINKTYPE_LINUX_SLL:
    return dpkt.sll.SLL(buf).data
  elif linktype == LINKTYPE_NULL:
    return dpkt.loopback.Loopback(buf).data
  elif len(buf) > 0 and buf[0] >> 4 == 6:
    return dpkt.ip6.IP6(buf)
  else:
    return dpkt.ip.IP(buf)

def transport_payloads(ip):
  t = ip.data

  if isinstance(t, (dpkt.tcp.TCP, dpkt.udp.UDP)):
    return (t.sport, t.dport, [t.data])
  elif isinstance(t, dpkt.sctp.SCTP):
    return (t.sport, t.dport,
      [c.data[SCTP_DATA_HDR_LEN:] for c in t.chunks if c.type == dpkt.sctp.DATA])

  return None

def dissect(frm_number, linktype, buf):
  ip = link_decode(linktype, buf)

  if isinstance(ip, dpkt.ip.IP):
    # no reassembly: fragments are ignored
    if ip.mf or ip.offset:
      logger.debug('frame %d: skipping IP fragment', frm_number)
      return
  elif not isinstance(ip, dpkt.ip6.IP6):
    return

  found = transport_payloads(ip)
  if found is None:
    return
  (sport, dport, contents) = found

  ipsrc = ipaddress.ip_address(ip.src)
  ipdst = ipaddress.ip_address(ip.dst)

  for content in contents:
    if len(content) > 0:
      yield Pdu(frm_number, ip.p, ipsrc, sport, ipdst, dport, bytes(content))

class CaptureLoader(object):
  '''reads a pcap or pcapng file, and yields PDUs found in its frames, one at a time.
Frames that cannot be dissected are skipped.'''
  def __init__(self, name):
    self.name = name

    try:
      self.f = open(name, 'rb')
    except OSError as e:
      raise CaptureError(name, e.strerror)

    try:
      self.reader = self.open_reader()
    except (ValueError, dpkt.UnpackError, CaptureError) as e:
      self.f.close()
      raise CaptureError(name, str(e))

    self.linktype = self.reader.datalink()
    if self.linktype not in SUPPORTED_LINKTYPES:
      self.f.close()
      raise CaptureError(name, 'unsupported link type %d' % self.linktype)

  def open_reader(self):
    magic = self.f.read(4)
    if len(magic) != 4:
      raise CaptureError('file too short')
    self.f.seek(0)

    (magic,) = unpack('=L', magic)
    if magic == PCAPNG_MAGIC:
      return dpkt.pcapng.Reader(self.f)
    return dpkt.pcap.Reader(self.f)

  def pdus(self):
    frm_number = 0
    frames = iter(self.reader)

    while True:
      try:
        (_, buf) = next(frames)
      except StopIteration:
        break
      except (ValueError, dpkt.UnpackError) as e:
        # truncated capture
        logger.warning('%s: stopped reading after frame %d: %s', self.name, frm_number, e)
        break

      frm_number += 1

      try:
        pdus = list(dissect(frm_number, self.linktype, buf))
      except dpkt.UnpackError as e:
        logger.debug('frame %d: could not be dissected: %r', frm_number, e)
        continue

      for pdu in pdus:
        yield pdu

  def payloads(self):
    for pdu in self.pdus():
      yield pdu.content

  def close(self):
    self.f.close()

  def __enter__(self):
    return self

  def __exit__(self, *exc_info):
    self.close()
